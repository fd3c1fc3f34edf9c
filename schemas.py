"""
Database Schemas for the Transport Entries API

Pydantic models for the MongoDB documents and the request bodies that
create or change them. Python attributes are snake_case; documents and JSON
use the camelCase aliases (``vehicleNo``, ``transportBillData`` ...).
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

from utils import as_utc, utcnow


def text(max_length: int, upper: bool = False, min_length: int = 0):
    return Annotated[
        str,
        StringConstraints(strip_whitespace=True, to_upper=upper, min_length=min_length, max_length=max_length),
    ]


class EntryStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Document(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, use_enum_values=True, validate_default=True
    )

    @field_validator("*", mode="after")
    @classmethod
    def normalize_datetimes(cls, v):
        if isinstance(v, datetime):
            return as_utc(v)
        return v


Money = Annotated[float, Field(ge=0)]


# Transport entries

class TransportBillData(Document):
    bill: float = 0
    ms: Optional[text(50)] = None
    gstno: Optional[text(15, upper=True)] = None
    other_detail: Optional[text(500)] = None
    srno: int = 0
    lrno: int = 0
    lr_date: Optional[datetime] = None
    invoice_no: Optional[text(50)] = None
    consignor_consignee: Optional[text(200)] = None
    handle_charges: Money = 0
    detention: Money = 0
    freight: Money = 0
    total: Money = 0
    status: EntryStatus = EntryStatus.PENDING


class OwnerData(Document):
    contact_no: int = 0
    owner_name_and_address: Optional[text(500)] = None
    pan_no: Optional[text(10, upper=True)] = None
    driver_name_and_mob: Optional[text(100)] = None
    licence_no: Optional[text(50)] = None
    chasis_no: Optional[text(50)] = None
    engine_no: Optional[text(50)] = None
    insurance_co: Optional[text(100)] = None
    policy_no: Optional[text(50)] = None
    policy_date: Optional[datetime] = None
    srno: int = 0
    lrno: int = 0
    packages: Money = 0
    description: Optional[text(500)] = None
    wt_kgs: Money = 0
    remarks: Optional[text(500)] = None
    broker_name: Optional[text(100)] = None
    broker_pan_no: Optional[text(10, upper=True)] = None
    lorry_hire_amount: Money = 0
    acc_no: int = 0
    other_charges_hamli_detention_height: Money = 0
    total_lorry_hire_rs: Money = 0
    # advance payments, up to three tranches
    adv_amt1: Money = 0
    adv_date1: Optional[datetime] = None
    neft_imps_idno1: Optional[text(50)] = None
    adv_amt2: Money = 0
    adv_date2: Optional[datetime] = None
    neft_imps_idno2: Optional[text(50)] = None
    adv_amt3: Money = 0
    adv_date3: Optional[datetime] = None
    neft_imps_idno3: Optional[text(50)] = None
    balance_amt: Money = 0
    other_charges_hamali_detention_height: Optional[text(200)] = None
    deduction_in_claim_penalty: Optional[text(200)] = None
    final_neft_imps_idno: Optional[text(50)] = None
    final_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None


class TransportEntryIn(Document):
    """Body of POST. ``id`` and ``userId`` are never read from clients."""
    date: datetime = Field(default_factory=utcnow)
    vehicle_no: text(20, upper=True, min_length=1)
    from_location: text(100, min_length=1) = Field(..., alias="from")
    to_location: text(100, min_length=1) = Field(..., alias="to")
    transport_bill_data: TransportBillData = Field(default_factory=TransportBillData)
    owner_data: OwnerData = Field(default_factory=OwnerData)


class TransportEntryUpdate(Document):
    """
    Body of PUT. Vehicle and route are required as on create; the date and
    the sub-records may be left out, and sub-records merge field by field.
    None of them accepts an explicit null.
    """
    date: datetime = Field(None, validate_default=False)
    vehicle_no: text(20, upper=True, min_length=1)
    from_location: text(100, min_length=1) = Field(..., alias="from")
    to_location: text(100, min_length=1) = Field(..., alias="to")
    transport_bill_data: TransportBillData = Field(None, validate_default=False)
    owner_data: OwnerData = Field(None, validate_default=False)


# Users

class Profile(Document):
    owner_name: text(100, min_length=1)
    company_name: text(200, min_length=1)
    mobile_number: text(20, min_length=1)
    address: text(500, min_length=1)
    gst_number: Optional[text(15, upper=True)] = None
    pan_number: Optional[text(10, upper=True)] = None


class Bank(Document):
    bank_name: Optional[text(100)] = None
    account_holder_name: Optional[text(100)] = None
    account_number: Optional[text(18)] = None
    ifsc_code: Optional[text(11, upper=True)] = None
    bank_branch_name: Optional[text(200)] = None


class ProfileUpdate(Document):
    owner_name: Optional[text(100, min_length=1)] = None
    company_name: Optional[text(200, min_length=1)] = None
    mobile_number: Optional[text(20, min_length=1)] = None
    address: Optional[text(500, min_length=1)] = None
    gst_number: Optional[text(15, upper=True)] = None
    pan_number: Optional[text(10, upper=True)] = None


class BankUpdate(Bank):
    pass


class RegisterRequest(Document):
    email: EmailStr
    password: str = Field(..., min_length=6)
    uniqueid: Optional[text(50, upper=True, min_length=1)] = None
    profile: Profile
    bank: Bank = Field(default_factory=Bank)


class LoginRequest(Document):
    email: EmailStr
    password: str


class UserUpdate(Document):
    email: Optional[EmailStr] = None
    profile: Optional[ProfileUpdate] = None
    bank: Optional[BankUpdate] = None
    # applied for admins only
    role: Optional[Literal["user", "admin"]] = None
    is_active: Optional[bool] = None


class ForgotPasswordRequest(Document):
    email: EmailStr


class ResetPasswordRequest(Document):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)


class ChangePasswordRequest(Document):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


def to_document(model: BaseModel, exclude_unset: bool = False) -> dict:
    return model.model_dump(by_alias=True, exclude_unset=exclude_unset)


def flatten_update(data: dict, prefix: str = "") -> dict:
    """Turn nested dicts into dotted ``$set`` paths so sub-documents merge."""
    flat = {}
    for key, value in data.items():
        path = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(flatten_update(value, prefix=f"{path}."))
        else:
            flat[path] = value
    return flat
