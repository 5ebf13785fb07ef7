from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Dict, Any
from decimal import Decimal

SUPPORTED_MIME_TYPES = (
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/tiff",
    "image/bmp",
    "application/pdf",
    "application/octet-stream",
)


class OcrDocumentRequest(BaseModel):
    document_url: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1)
    mime_type: str = Field(..., min_length=1)
    file_size: Optional[int] = None

    @field_validator('document_url')
    @classmethod
    def validate_document_url(cls, v: str) -> str:
        if not v.strip().lower().startswith(("http://", "https://")):
            raise ValueError("Document URL must be an http(s) URL")
        return v.strip()


class ProviderFailure(BaseModel):
    provider: str
    error: str


class OcrResult(BaseModel):
    """What a provider hands back after ``to_canonical_format``"""
    success: bool = True
    extracted_text: str = ""
    provider: str = "none"
    # Providers that already understand invoices (Claude Vision) fill this with
    # the same shape the AI extraction pass returns
    structured: Optional[Dict[str, Any]] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    errors: List[ProviderFailure] = Field(default_factory=list)


class VendorInfo(BaseModel):
    name: Optional[str] = None
    siret: Optional[str] = None
    siren: Optional[str] = None
    vat_number: Optional[str] = None
    rcs: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class ClientInfo(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    client_number: Optional[str] = None


class DocumentDates(BaseModel):
    issue: Optional[str] = None  # YYYY-MM-DD
    due: Optional[str] = None


class Amounts(BaseModel):
    ht: Optional[Decimal] = None
    vat: Optional[Decimal] = None
    ttc: Optional[Decimal] = None


class LineItem(BaseModel):
    description: str = "Item"
    quantity: Decimal = Decimal("1")
    unit_price_ht: Optional[Decimal] = None
    total_ht: Optional[Decimal] = None
    total_ttc: Optional[Decimal] = None
    vat_rate: Optional[Decimal] = None


class PaymentDetails(BaseModel):
    iban: Optional[str] = None
    bic: Optional[str] = None


class FinancialData(BaseModel):
    vendor: VendorInfo = Field(default_factory=VendorInfo)
    client: ClientInfo = Field(default_factory=ClientInfo)
    document_number: Optional[str] = None
    dates: DocumentDates = Field(default_factory=DocumentDates)
    amounts: Amounts = Field(default_factory=Amounts)
    tax_rate: Optional[Decimal] = None
    currency: str = "EUR"
    line_items: List[LineItem] = Field(default_factory=list)
    category: str = "OTHER"
    payment_method: str = "unknown"
    payment: PaymentDetails = Field(default_factory=PaymentDetails)
    description: Optional[str] = None
    confidence: float = 0.0
    warnings: List[str] = Field(default_factory=list)


class OcrResponse(BaseModel):
    success: bool = True
    provider: str
    extracted_text: str
    financial_analysis: FinancialData
    metadata: Dict[str, Any] = Field(default_factory=dict)
    message: str


class ProviderUsage(BaseModel):
    provider: str
    used: int
    limit: Optional[int]
    available: Optional[int]
    month: str
