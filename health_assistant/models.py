"""
Pydantic request/response models for the Elder Health Assistant API.

Request field names follow the front-end's camelCase JSON; Python attributes
are snake_case with aliases.
"""
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

Level = Literal["low", "medium", "high"]


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- Analyze ---

class ImageInput(CamelModel):
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    data: str = Field(alias="base64")


class DocumentInput(CamelModel):
    data: str = Field(alias="base64")


class AnalyzeRequest(CamelModel):
    # Plain str: unknown modes are still forwarded with an empty instruction.
    mode: Optional[str] = None
    images: Optional[List[ImageInput]] = None
    pdf_data: Optional[DocumentInput] = Field(default=None, alias="pdfData")

    @model_validator(mode="after")
    def require_mode_and_content(self) -> "AnalyzeRequest":
        if not self.mode:
            raise ValueError("mode is required")
        if not self.images and self.pdf_data is None:
            raise ValueError("images or pdfData is required")
        return self


class AnalyzeResponse(BaseModel):
    success: bool = True
    data: Any


# --- Text to speech ---

class TTSRequest(BaseModel):
    text: Optional[str] = None

    @model_validator(mode="after")
    def require_text(self) -> "TTSRequest":
        if not self.text:
            raise ValueError("text is required")
        return self


class TTSResponse(BaseModel):
    success: bool = True
    audio: str  # base64


# --- Chat ---

class ChatTurn(BaseModel):
    role: Optional[str] = None  # "user"; anything else is treated as the model
    text: str


class ChatRequest(CamelModel):
    message: Optional[str] = None
    context_type: Optional[str] = Field(default=None, alias="contextType")
    context_item: Optional[str] = Field(default=None, alias="contextItem")
    context_content: Optional[str] = Field(default=None, alias="contextContent")
    history: Optional[List[ChatTurn]] = None  # oldest first

    @model_validator(mode="after")
    def require_message(self) -> "ChatRequest":
        if not self.message:
            raise ValueError("message is required")
        return self


class ChatResponse(BaseModel):
    success: bool = True
    reply: str


# --- Health / errors ---

class HealthResponse(CamelModel):
    status: str = "ok"
    has_api_key: bool = Field(alias="hasApiKey")


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


# --- Analysis results (one schema per mode) ---

class ResultModel(BaseModel):
    # Keep any extra keys the model adds; the front-end ignores them.
    model_config = ConfigDict(extra="allow")


class FollowUp(ResultModel):
    timeline: str
    target_date: str
    action: str


class AttentionItem(ResultModel):
    item: str
    value: str
    explanation: str
    advice: str
    severity: Level
    follow_up: FollowUp


class ReportResult(ResultModel):
    exam_date: str
    overall_summary: str
    good_news: List[str]
    attention_needed: List[AttentionItem]
    diet_lifestyle_guide: List[str]


class MedicineResult(ResultModel):
    name: str
    efficacy: str
    usage: str
    contraindications: str
    side_effects_alert: str
    summary: str


class NutritionAlert(ResultModel):
    sugar: Level
    salt: Level
    fat: Level


class FoodResult(ResultModel):
    name: str
    ingredients_analysis: str
    additives_alert: List[str]
    nutrition_alert: NutritionAlert
    advice_for_elderly: str
    summary: str


AnalysisResult = Union[ReportResult, MedicineResult, FoodResult]

RESULT_MODELS: Dict[str, Type[ResultModel]] = {
    "report": ReportResult,
    "medicine": MedicineResult,
    "food": FoodResult,
}
