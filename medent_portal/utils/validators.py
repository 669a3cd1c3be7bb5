"""
Form validation for the portal's intake forms.

Each validator takes the submitted form as a mapping and returns a mapping
of field name to a user-facing message. An empty result means the form is
valid.
"""

import re
from typing import Any, Dict, List, Mapping, Tuple

# Validation patterns
TEL_STRIP_PATTERN = r"[-+().\s]"
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

# Telephone length limits (digits)
MIN_TEL_DIGITS = 10
MAX_TEL_DIGITS = 15

TEL_INVALID_MESSAGE = "有効な電話番号を入力してください（10-15桁の数字）"
AMOUNT_INVALID_MESSAGE = "有効な金額を入力してください"
SIGNATURE_REQUIRED_MESSAGE = "電子サインは必須です"

LOAN_APPLICATION_STEPS = (
    "基本情報",
    "連絡先情報",
    "住所情報",
    "勤務先情報",
    "ローン情報",
    "確認・同意",
)

# (field, message) per wizard step
_STEP_REQUIRED: Tuple[List[Tuple[str, str]], ...] = (
    [
        ("last_name", "姓を入力してください"),
        ("first_name", "名を入力してください"),
        ("last_name_kana", "セイを入力してください"),
        ("first_name_kana", "メイを入力してください"),
        ("birth_date", "生年月日を入力してください"),
        ("gender", "性別を選択してください"),
    ],
    [
        ("email", "メールアドレスを入力してください"),
        ("phone", "電話番号を入力してください"),
    ],
    [
        ("postal_code", "郵便番号を入力してください"),
        ("prefecture", "都道府県を入力してください"),
        ("city", "市区町村を入力してください"),
        ("address", "番地を入力してください"),
    ],
    [
        ("employment_type", "雇用形態を選択してください"),
        ("company_name", "勤務先名を入力してください"),
        ("annual_income", "年収を選択してください"),
    ],
    [
        ("loan_amount", "申込金額を入力してください"),
    ],
    [
        ("agree_terms", "利用規約に同意してください"),
        ("agree_privacy", "個人情報取扱いに同意してください"),
        ("agree_credit", "信用情報の取扱いに同意してください"),
    ],
)

_LEASE_REQUIRED = (
    ("business_type", "事業形態は必須です"),
    ("company_name", "法人名は必須です"),
    ("hospital_name", "医院名は必須です"),
    ("hospital_address", "医院住所は必須です"),
)


def _text(form: Mapping[str, Any], field: str) -> str:
    value = form.get(field)
    if value is None:
        return ""
    return str(value).strip()


def is_valid_tel(value: str) -> bool:
    """Digits only after removing ``-+().`` and whitespace, 10 to 15 of them."""
    cleaned = re.sub(TEL_STRIP_PATTERN, "", value or "")
    return cleaned.isdigit() and MIN_TEL_DIGITS <= len(cleaned) <= MAX_TEL_DIGITS


def is_valid_email(value: str) -> bool:
    return bool(re.match(EMAIL_PATTERN, value or ""))


def _check_tel(
    errors: Dict[str, str], form: Mapping[str, Any], field: str, required_message: str
) -> None:
    value = _text(form, field)
    if not value:
        errors[field] = required_message
    elif not is_valid_tel(value):
        errors[field] = TEL_INVALID_MESSAGE


def validate_lease_screening_form(form: Mapping[str, Any]) -> Dict[str, str]:
    """
    Validate the lease screening form.

    Furigana is required for each representative name part that is filled
    in. A signature (PNG data URL) must be present.

    Args:
        form: Submitted fields (snake_case names)

    Returns:
        Mapping of field name to error message
    """
    errors: Dict[str, str] = {}

    for field, message in _LEASE_REQUIRED:
        if not _text(form, field):
            errors[field] = message

    _check_tel(errors, form, "hospital_tel", "医院TELは必須です")

    last_name = _text(form, "representative_last_name")
    first_name = _text(form, "representative_first_name")
    if not last_name:
        errors["representative_last_name"] = "代表者名（姓）は必須です"
    if not first_name:
        errors["representative_first_name"] = "代表者名（名）は必須です"
    if last_name and not _text(form, "representative_last_name_furigana"):
        errors["representative_last_name_furigana"] = "代表者名（姓）のふりがなを入力してください"
    if first_name and not _text(form, "representative_first_name_furigana"):
        errors["representative_first_name_furigana"] = "代表者名（名）のふりがなを入力してください"

    if not _text(form, "birth_date"):
        errors["birth_date"] = "生年月日は必須です"

    if not _text(form, "representative_address"):
        errors["representative_address"] = "代表者住所は必須です"

    _check_tel(errors, form, "representative_tel", "代表者TELは必須です")

    if not _text(form, "property_name"):
        errors["property_name"] = "物件名は必須です"

    amount = _text(form, "amount")
    if not amount:
        errors["amount"] = "金額は必須です"
    else:
        digits = re.sub(r"[^0-9]", "", amount)
        if not digits or int(digits) <= 0:
            errors["amount"] = AMOUNT_INVALID_MESSAGE

    if not _text(form, "signature"):
        errors["signature"] = SIGNATURE_REQUIRED_MESSAGE

    return errors


def validate_loan_application_step(step: int, form: Mapping[str, Any]) -> Dict[str, str]:
    """
    Validate one step of the six-step loan application wizard.

    Args:
        step: Zero-based step index (see ``LOAN_APPLICATION_STEPS``)
        form: Fields collected so far

    Returns:
        Mapping of field name to error message for that step

    Raises:
        ValueError: If the step index is out of range
    """
    if not 0 <= step < len(_STEP_REQUIRED):
        raise ValueError(f"Unknown loan application step: {step}")

    errors: Dict[str, str] = {}
    for field, message in _STEP_REQUIRED[step]:
        value = form.get(field)
        if isinstance(value, str):
            value = value.strip()
        if not value or value in ("false", "off"):
            errors[field] = message
    return errors


def validate_new_application(form: Mapping[str, Any]) -> Dict[str, str]:
    """
    Validate the new application form.

    Every field is optional; values are checked only when given.
    """
    errors: Dict[str, str] = {}

    email = _text(form, "sent_to_email")
    if email and not is_valid_email(email):
        errors["sent_to_email"] = "有効なメールアドレスを入力してください"

    tel = _text(form, "clinic_tel")
    if tel and not is_valid_tel(tel):
        errors["clinic_tel"] = TEL_INVALID_MESSAGE

    amount = form.get("amount")
    if amount not in (None, ""):
        digits = re.sub(r"[^0-9]", "", str(amount))
        if not digits or int(digits) <= 0:
            errors["amount"] = AMOUNT_INVALID_MESSAGE

    return errors
