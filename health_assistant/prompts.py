"""
Prompt templates and Gemini request builders.

The instructions are in Chinese because the front-end serves Chinese-speaking
elderly users. Each analysis instruction ends with the exact JSON schema the
front-end renders; keep the schema text valid JSON.
"""
import base64
import binascii
import logging
from typing import List, Optional, Sequence

from google.genai import types

from .errors import UpstreamError
from .models import ChatTurn, DocumentInput, ImageInput

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"
DOCUMENT_MIME_TYPE = "application/pdf"

# --- Analysis instructions ---

REPORT_PROMPT = (
    "你是一位经验丰富、和蔼可亲的全科医生。用最简单的语言帮老年人看懂体检报告。"
    "严格按JSON格式输出："
    '{"exam_date":"检查日期","overall_summary":"2-3句话概括","good_news":["好消息1"],'
    '"attention_needed":[{"item":"指标名","value":"数值","explanation":"简单解释",'
    '"advice":"建议","severity":"low/medium/high","follow_up":{"timeline":"如3个月后",'
    '"target_date":"具体日期","action":"做什么检查"}}],"diet_lifestyle_guide":["建议1"]}'
)

MEDICINE_PROMPT = (
    "你是一位药剂师，帮老人理解药物。严格按JSON格式输出："
    '{"name":"药品名","efficacy":"治什么的","usage":"怎么吃",'
    '"contraindications":"什么情况不能吃","side_effects_alert":"可能的副作用",'
    '"summary":"最重要的注意事项"}'
)

FOOD_PROMPT = (
    "你是一位营养师，帮老人看食品配料表。严格按JSON格式输出："
    '{"name":"食品名","ingredients_analysis":"主要成分","additives_alert":["添加剂1"],'
    '"nutrition_alert":{"sugar":"low/medium/high","salt":"low/medium/high",'
    '"fat":"low/medium/high"},"advice_for_elderly":"老人建议","summary":"一句话总结"}'
)

ANALYSIS_PROMPTS = {
    "report": REPORT_PROMPT,
    "medicine": MEDICINE_PROMPT,
    "food": FOOD_PROMPT,
}

# Trailing user turn after the inlined images/document.
ANALYZE_REQUEST_TEXT = "请分析并按JSON格式输出。"

# --- Chat ---

CHAT_PROMPT = (
    "你是一位耐心的健康顾问，正在帮助老年用户理解{context_type}。"
    "当前讨论：{context_item}。背景：{context_content}。"
    "请用简单口语回答，避免专业术语。"
)

CHAT_DEFAULT_CONTEXT_TYPE = "健康信息"
CHAT_DEFAULT_CONTEXT_CONTENT = "无"

# --- Text to speech ---

TTS_PROMPT = "请朗读：{text}"


def build_analysis_prompt(mode: Optional[str]) -> str:
    """Return the system instruction for an analysis mode.

    Unknown or missing modes get an empty instruction rather than an error.
    """
    prompt = ANALYSIS_PROMPTS.get(mode or "", "")
    if not prompt:
        logger.warning(f"No analysis prompt for mode {mode!r}; sending without instruction")
    return prompt


def build_chat_prompt(
    context_type: Optional[str] = None,
    context_item: Optional[str] = None,
    context_content: Optional[str] = None,
) -> str:
    return CHAT_PROMPT.format(
        context_type=context_type or CHAT_DEFAULT_CONTEXT_TYPE,
        context_item=context_item or "",
        context_content=context_content or CHAT_DEFAULT_CONTEXT_CONTENT,
    )


def _decode(payload: str, label: str) -> bytes:
    # Browsers may send line-wrapped or unpadded base64; Gemini accepts both.
    cleaned = "".join(payload.split())
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise UpstreamError(f"{label} is not valid base64: {e}") from e


def build_content_parts(
    images: Optional[Sequence[ImageInput]] = None,
    document: Optional[DocumentInput] = None,
) -> List[types.Part]:
    """Build analysis parts: images first, then the document, then the request text."""
    parts = []
    for i, image in enumerate(images or []):
        parts.append(types.Part.from_bytes(
            data=_decode(image.data, f"images[{i}]"),
            mime_type=image.mime_type or DEFAULT_IMAGE_MIME_TYPE,
        ))
    if document is not None:
        parts.append(types.Part.from_bytes(
            data=_decode(document.data, "pdfData"),
            mime_type=DOCUMENT_MIME_TYPE,
        ))
    parts.append(types.Part.from_text(text=ANALYZE_REQUEST_TEXT))
    return parts


def build_analysis_contents(
    images: Optional[Sequence[ImageInput]] = None,
    document: Optional[DocumentInput] = None,
) -> List[types.Content]:
    return [types.Content(role="user", parts=build_content_parts(images, document))]


def build_chat_contents(
    history: Optional[Sequence[ChatTurn]],
    message: str,
) -> List[types.Content]:
    """Replay history oldest-first, then append the new user message."""
    contents = []
    for turn in history or []:
        role = "user" if turn.role == "user" else "model"
        contents.append(types.Content(role=role, parts=[types.Part.from_text(text=turn.text)]))
    contents.append(types.Content(role="user", parts=[types.Part.from_text(text=message)]))
    return contents


def build_tts_contents(text: str) -> List[types.Content]:
    return [types.Content(parts=[types.Part.from_text(text=TTS_PROMPT.format(text=text))])]
