"""
Data transfer models mirroring the financing API's resources.

The API owns the lifecycle of every resource here; these models only give the
portal typed access to the JSON it receives and sends. Fields the backend
names in camelCase keep that spelling on the wire through aliases.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    """Base for models whose wire format uses camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ==================== AUTH ====================


class User(BaseModel):
    """Signed-in portal user."""

    id: str
    name: str
    email: str
    role: Literal["admin", "staff"] = "admin"


class AuthState(BaseModel):
    """Persisted session state (the ``state`` object of the auth cookie)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user: Optional[User] = None
    token: Optional[str] = None
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    is_authenticated: bool = Field(default=False, alias="isAuthenticated")


class TokenPair(CamelModel):
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    expires_in: Optional[int] = Field(default=None, alias="expiresIn")


class CredentialCheck(BaseModel):
    """Body of the basic-auth gate check."""

    username: str = ""
    password: str = ""


# ==================== APPLICATIONS ====================


class SystemValue(CamelModel):
    name: str = ""
    name_jp: Optional[str] = Field(default=None, alias="nameJp")
    enum_value: Optional[str] = Field(default=None, alias="enumValue")

    @property
    def label(self) -> str:
        return self.name_jp or self.name


class UserBrief(CamelModel):
    id: int
    uuid: str
    name: str
    email: str


class AttachmentResponse(CamelModel):
    id: int
    uuid: str
    entity_type: str = Field(alias="entityType")
    entity_id: str = Field(alias="entityId")
    original_filename: str = Field(alias="originalFilename")
    attachment_url: str = Field(alias="attachmentUrl")
    mime_type: str = Field(alias="mimeType")
    file_size: int = Field(alias="fileSize")
    description: Optional[str] = None
    version: int = 1
    access_count: int = Field(default=0, alias="accessCount")


class ApplicationResponse(CamelModel):
    id: Optional[int] = None
    uuid: str
    application_number: Optional[str] = Field(default=None, alias="applicationNumber")
    customer_id: Optional[str] = Field(default=None, alias="customerId")
    corporate_name: Optional[str] = Field(default=None, alias="corporateName")
    clinic_name: Optional[str] = Field(default=None, alias="clinicName")
    property_name: Optional[str] = Field(default=None, alias="propertyName")
    amount: Optional[int] = None
    pic_name: Optional[str] = Field(default=None, alias="picName")
    application_url: Optional[str] = Field(default=None, alias="applicationUrl")
    sent_to_email: Optional[str] = Field(default=None, alias="sentToEmail")
    qr_code_url: Optional[str] = Field(default=None, alias="qrCodeUrl")
    status: Optional[SystemValue] = None
    application_mode: Optional[SystemValue] = Field(default=None, alias="applicationMode")
    submitted_at: Optional[str] = Field(default=None, alias="submittedAt")
    completed_at: Optional[str] = Field(default=None, alias="completedAt")
    attachment_list: List[AttachmentResponse] = Field(
        default_factory=list, alias="attachmentList"
    )


class CreateApplicationRequest(CamelModel):
    """Body for creating or updating an application. Every field is optional."""

    customer_id: Optional[str] = Field(default=None, alias="customerId")
    business_type: Optional[str] = Field(default=None, alias="businessType")
    business_name: Optional[str] = Field(default=None, alias="businessName")
    corporate_name: Optional[str] = Field(default=None, alias="corporateName")
    clinic_name: Optional[str] = Field(default=None, alias="clinicName")
    clinic_address: Optional[str] = Field(default=None, alias="clinicAddress")
    clinic_tel: Optional[str] = Field(default=None, alias="clinicTel")
    representative_last_name: Optional[str] = Field(
        default=None, alias="representativeLastName"
    )
    representative_first_name: Optional[str] = Field(
        default=None, alias="representativeFirstName"
    )
    representative_last_name_furigana: Optional[str] = Field(
        default=None, alias="representativeLastNameFurigana"
    )
    representative_first_name_furigana: Optional[str] = Field(
        default=None, alias="representativeFirstNameFurigana"
    )
    representative_address: Optional[str] = Field(
        default=None, alias="representativeAddress"
    )
    representative_tel: Optional[str] = Field(default=None, alias="representativeTel")
    representative_birth_date: Optional[str] = Field(
        default=None, alias="representativeBirthDate"
    )
    property_name: Optional[str] = Field(default=None, alias="propertyName")
    amount: Optional[int] = None
    pic_name: Optional[str] = Field(default=None, alias="picName")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ApplicationFilters(CamelModel):
    page: Optional[int] = None
    limit: Optional[int] = None
    sort_by: Optional[str] = Field(default=None, alias="sortBy")
    sort_order: Optional[Literal["asc", "desc"]] = Field(default=None, alias="sortOrder")
    application_number: Optional[str] = Field(default=None, alias="applicationNumber")
    clinic_name: Optional[str] = Field(default=None, alias="clinicName")
    corporate_name: Optional[str] = Field(default=None, alias="corporateName")
    customer_id: Optional[str] = Field(default=None, alias="customerId")
    status: Optional[str] = None
    from_date: Optional[str] = Field(default=None, alias="fromDate")
    to_date: Optional[str] = Field(default=None, alias="toDate")


class Pagination(BaseModel):
    page: int = 1
    limit: int = 10
    total: int = 0
    total_pages: int = Field(default=0, alias="totalPages")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ==================== CONTRACTS / PROJECTS ====================


class Contract(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    contract_number: Optional[str] = None
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    treatment_name: Optional[str] = None
    contract_amount: int = 0
    loan_type: Optional[str] = None
    finance_company_name: Optional[str] = None
    contract_type: Literal["normal", "special"] = "normal"
    status: str = "pending"
    application_date: Optional[str] = None
    approval_date: Optional[str] = None
    completion_date: Optional[str] = None
    monthly_payment: Optional[int] = None
    payment_count: Optional[int] = None
    interest_rate: Optional[float] = None
    service_completion_rate: Optional[float] = None


class ContractFilters(BaseModel):
    status: Optional[str] = None
    patient_name: Optional[str] = None
    contract_type: Optional[Literal["normal", "special"]] = None
    finance_company_name: Optional[str] = None
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    page: Optional[int] = None
    limit: Optional[int] = None


class CreateContractRequest(BaseModel):
    patient_id: str
    patient_name: str
    treatment_name: str
    contract_amount: int = Field(ge=0)
    loan_type: str
    finance_company_name: str
    contract_type: Literal["normal", "special"] = "normal"
    status: Optional[str] = None
    monthly_payment: Optional[int] = None
    payment_count: Optional[int] = None
    interest_rate: Optional[float] = None


class UpdateContractRequest(BaseModel):
    patient_name: Optional[str] = None
    treatment_name: Optional[str] = None
    contract_amount: Optional[int] = None
    loan_type: Optional[str] = None
    finance_company_name: Optional[str] = None
    contract_type: Optional[Literal["normal", "special"]] = None
    status: Optional[str] = None
    approval_date: Optional[str] = None
    completion_date: Optional[str] = None
    service_completion_rate: Optional[float] = None


class Project(BaseModel):
    """Project as displayed in the portal (normalized from the API record)."""

    id: str
    project_number: str = ""
    customer_id: str = ""
    clinic_name: str = ""
    item_name: str = ""
    amount: int = 0
    leasing_company: str = "-"
    status: str = "不明"
    application_request_date: str = ""
    application_date: str = ""
    contract_request_date: Optional[str] = None
    is_contractable: bool = False


class ProjectFilters(CamelModel):
    limit: int = 10
    offset: int = 0
    is_desc_by_created_at: bool = Field(default=True, alias="isDescByCreatedAt")
    created_date_from: Optional[str] = Field(default=None, alias="createdDateFrom")
    created_date_to: Optional[str] = Field(default=None, alias="createdDateTo")
    status_ids: Optional[str] = Field(default=None, alias="statusIds")
    project_number: Optional[str] = Field(default=None, alias="projectNumber")
    customer_id: Optional[str] = Field(default=None, alias="customerId")
    business_name: Optional[str] = Field(default=None, alias="businessName")
    clinic_name: Optional[str] = Field(default=None, alias="clinicName")
    min_amount: Optional[int] = Field(default=None, alias="minAmount")
    max_amount: Optional[int] = Field(default=None, alias="maxAmount")


class CreateProjectRequest(BaseModel):
    patient_id: str
    patient_name: str
    treatment_name: str
    project_amount: int = Field(ge=0)
    loan_type: str = "standard"
    finance_company_name: str = ""
    project_type: Literal["normal", "special"] = "normal"
    status: Optional[str] = None
    application_date: Optional[str] = None


class UpdateProjectRequest(BaseModel):
    patient_name: Optional[str] = None
    treatment_name: Optional[str] = None
    project_amount: Optional[int] = None
    loan_type: Optional[str] = None
    finance_company_name: Optional[str] = None
    project_type: Optional[Literal["normal", "special"]] = None
    status: Optional[str] = None
    approval_date: Optional[str] = None
    completion_date: Optional[str] = None


# ==================== PAYMENTS ====================


class PaymentStatus(str, Enum):
    """Lifecycle states of a payment request, as reported by the API."""

    PAYMENT_REQUESTED = "payment_requested"
    REQUESTED = "REQUESTED"
    REVIEWING = "reviewing"
    REVIEW_APPROVED = "review_approved"
    REVIEW_REJECTED = "review_rejected"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SECONDARY_REVIEWING = "secondary_reviewing"
    SECONDARY_APPROVED = "secondary_approved"
    SECONDARY_REJECTED = "secondary_rejected"
    SPECIAL_REVIEWING = "special_reviewing"
    SPECIAL_APPROVED = "special_approved"
    SPECIAL_REJECTED = "special_rejected"
    SALES_REQUESTED = "SALES_REQUESTED"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"
    PAYMENT_COMPLETED = "payment_completed"


PAYMENT_STATUS_LABELS: Dict[PaymentStatus, str] = {
    PaymentStatus.PAYMENT_REQUESTED: "決済依頼済み",
    PaymentStatus.REQUESTED: "依頼済み",
    PaymentStatus.REVIEWING: "審査中",
    PaymentStatus.REVIEW_APPROVED: "審査OK",
    PaymentStatus.REVIEW_REJECTED: "審査NG",
    PaymentStatus.APPROVED: "承認済み",
    PaymentStatus.REJECTED: "却下",
    PaymentStatus.SECONDARY_REVIEWING: "二次審査中",
    PaymentStatus.SECONDARY_APPROVED: "二次審査OK",
    PaymentStatus.SECONDARY_REJECTED: "二次審査NG",
    PaymentStatus.SPECIAL_REVIEWING: "特別審査中",
    PaymentStatus.SPECIAL_APPROVED: "特別審査OK",
    PaymentStatus.SPECIAL_REJECTED: "特別審査NG",
    PaymentStatus.SALES_REQUESTED: "売上計上依頼",
    PaymentStatus.COMPLETED: "完了",
    PaymentStatus.CANCELED: "キャンセル",
    PaymentStatus.PAYMENT_COMPLETED: "決済完了",
}

_APPROVED_COLORS = {"background": "#e8f5e9", "text": "#2e7d32"}
_REJECTED_COLORS = {"background": "#ffebee", "text": "#c62828"}
_REQUESTED_COLORS = {"background": "#e3f2fd", "text": "#1565c0"}

PAYMENT_STATUS_COLORS: Dict[PaymentStatus, Dict[str, str]] = {
    PaymentStatus.PAYMENT_REQUESTED: _REQUESTED_COLORS,
    PaymentStatus.REQUESTED: _REQUESTED_COLORS,
    PaymentStatus.REVIEWING: {"background": "#fff3e0", "text": "#e65100"},
    PaymentStatus.REVIEW_APPROVED: _APPROVED_COLORS,
    PaymentStatus.REVIEW_REJECTED: _REJECTED_COLORS,
    PaymentStatus.APPROVED: _APPROVED_COLORS,
    PaymentStatus.REJECTED: _REJECTED_COLORS,
    PaymentStatus.SECONDARY_REVIEWING: {"background": "#fce4ec", "text": "#c2185b"},
    PaymentStatus.SECONDARY_APPROVED: _APPROVED_COLORS,
    PaymentStatus.SECONDARY_REJECTED: _REJECTED_COLORS,
    PaymentStatus.SPECIAL_REVIEWING: {"background": "#f3e5f5", "text": "#6a1b9a"},
    PaymentStatus.SPECIAL_APPROVED: _APPROVED_COLORS,
    PaymentStatus.SPECIAL_REJECTED: _REJECTED_COLORS,
    PaymentStatus.SALES_REQUESTED: {"background": "#fff8e1", "text": "#f57c00"},
    PaymentStatus.COMPLETED: {"background": "#e0f2f1", "text": "#00695c"},
    PaymentStatus.CANCELED: {"background": "#fafafa", "text": "#616161"},
    PaymentStatus.PAYMENT_COMPLETED: {"background": "#1976d2", "text": "#ffffff"},
}


class PaymentMethod(str, Enum):
    NORMAL_LOAN = "通常ローン"
    SPECIAL_LOAN = "特別ローン"
    CARD = "カード決済"
    UNSELECTED = "未選択"


class Payment(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    payment_id: str
    patient_name: str = ""
    patient_id: Optional[str] = None
    treatment_name: Optional[str] = None
    amount: int = 0
    status: PaymentStatus = PaymentStatus.PAYMENT_REQUESTED
    payment_method: Optional[str] = None
    payment_link: Optional[str] = None
    clinic_name: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    finance_company: Optional[str] = None
    monthly_payment: Optional[int] = None
    installments: Optional[int] = None

    @property
    def status_label(self) -> str:
        return PAYMENT_STATUS_LABELS[self.status]

    @property
    def status_colors(self) -> Dict[str, str]:
        return PAYMENT_STATUS_COLORS[self.status]


class PaymentHistoryEntry(BaseModel):
    status: str
    datetime: str
    note: Optional[str] = None


class LoanDetails(BaseModel):
    installments: int
    monthly_payment: int
    interest_rate: float


class PaymentDetail(BaseModel):
    model_config = ConfigDict(extra="allow")

    payment_id: str
    patient_id: Optional[str] = None
    patient_name: str = ""
    treatment_name: str = ""
    amount: int = 0
    payment_method: PaymentMethod = PaymentMethod.UNSELECTED
    status: str = ""
    requested_at: Optional[str] = None
    applied_at: Optional[str] = None
    completed_at: Optional[str] = None
    memo: Optional[str] = None
    loan_details: Optional[LoanDetails] = None
    history: List[PaymentHistoryEntry] = Field(default_factory=list)


class PaymentCreateRequest(BaseModel):
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    treatment_name: Optional[str] = None
    amount: Optional[int] = Field(default=None, ge=0)
    memo: Optional[str] = None


class PaymentCreateResponse(BaseModel):
    payment_id: str
    payment_link: str
    qr_code: Optional[str] = None
    expires_at: str


class PaymentLinkInfo(BaseModel):
    """Public view of a payment link, shown to the end customer."""

    model_config = ConfigDict(extra="ignore")

    clinic_name: str = ""
    treatment_name: Optional[str] = None
    amount: Optional[int] = None
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None


# ==================== FINANCE COMPANIES ====================


class LoanCompany(CamelModel):
    code: str
    name: str
    description: str = ""
    min_amount: int = Field(alias="minAmount")
    max_amount: int = Field(alias="maxAmount")
    priority: Optional[int] = None


class FinanceCompany(CamelModel):
    id: str
    name: str
    code: str = ""
    priority: int
    is_active: bool = Field(default=True, alias="isActive")


class PaymentPlanSetting(CamelModel):
    """Payment plan offered by the clinic (managed in clinic settings)."""

    id: str = ""
    name: str
    monthly_options: List[int] = Field(
        default_factory=lambda: [3, 6, 12, 24, 36], alias="monthlyOptions"
    )
    interest_rate: float = Field(default=0, alias="interestRate")
    is_active: bool = Field(default=True, alias="isActive")


class LeaseRates(BaseModel):
    five_year: str = Field(alias="fiveYear")
    six_year: str = Field(alias="sixYear")
    seven_year: str = Field(alias="sevenYear")

    model_config = ConfigDict(populate_by_name=True)


class LeaseCompanyResult(CamelModel):
    company_name: str = Field(alias="companyName")
    screening_result: Literal["OK", "NG"] = Field(alias="screeningResult")
    rates: LeaseRates
    max_amount: int = Field(default=0, alias="maxAmount")
    additional_conditions: str = Field(default="", alias="additionalConditions")


class ClinicSettings(CamelModel):
    clinic_name: str = Field(default="", alias="clinicName")
    default_landing_page: str = Field(default="new-payment", alias="defaultLandingPage")
    auto_send_sms: bool = Field(default=True, alias="autoSendSms")
    auto_send_email: bool = Field(default=True, alias="autoSendEmail")
