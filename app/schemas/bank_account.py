"""Bank account schemas. Account numbers are only ever returned masked."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.bank_account import BankAccountType
from app.utils.audit import mask_account_number


class BankAccountUpsert(BaseModel):
    bank_name: str = Field(min_length=2, max_length=100)
    account_holder_name: str = Field(min_length=2, max_length=200)
    account_number: str = Field(min_length=6, max_length=34)
    branch_code: str = Field(min_length=3, max_length=20)
    account_type: BankAccountType = BankAccountType.SAVINGS
    is_primary: bool = True

    @field_validator("account_number", "branch_code")
    @classmethod
    def _digits_only(cls, value: str) -> str:
        cleaned = value.replace(" ", "").replace("-", "")
        if not cleaned.isdigit():
            raise ValueError("must contain digits only")
        return cleaned


class BankAccountRead(BaseModel):
    id: int
    user_id: int
    bank_name: str
    account_holder_name: str
    account_number: str
    branch_code: str
    account_type: BankAccountType
    is_verified: bool
    is_primary: bool
    verified_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def _mask(self) -> "BankAccountRead":
        self.account_number = mask_account_number(self.account_number)
        return self
