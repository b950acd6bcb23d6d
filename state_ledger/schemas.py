"""
Pydantic schemas for handler payloads and HTTP requests
"""

from typing import List, Type, TypeVar
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ValidationError
from .models import INT64_MAX, INT64_MIN, Account, Transfer


SchemaT = TypeVar("SchemaT", bound=BaseModel)


class OpenAccountRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_id: StrictStr = Field(..., alias="customerID", min_length=1)
    account_id: StrictStr = Field(..., alias="accountID", min_length=1)
    balance: StrictInt = Field(0, ge=0, le=INT64_MAX, description="Opening balance in minor units")

    def to_account(self) -> Account:
        return Account(
            customer_id=self.customer_id,
            account_id=self.account_id,
            balance=self.balance,
        )


class TransferRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_customer_id: StrictStr = Field("", alias="fromCustomerID")
    from_account_id: StrictStr = Field("", alias="fromAccountID")
    to_customer_id: StrictStr = Field("", alias="toCustomerID")
    to_account_id: StrictStr = Field("", alias="toAccountID")
    amount: StrictInt = Field(0, ge=INT64_MIN, le=INT64_MAX)
    fee: StrictInt = Field(0, ge=INT64_MIN, le=INT64_MAX)

    def to_transfer(self) -> Transfer:
        return Transfer(
            from_customer_id=self.from_customer_id,
            from_account_id=self.from_account_id,
            to_customer_id=self.to_customer_id,
            to_account_id=self.to_account_id,
            amount=self.amount,
            fee=self.fee,
        )


class InvocationRequest(BaseModel):
    function: str = Field(..., description="Handler function name, e.g. OpenAccount")
    args: List[str] = Field(default_factory=list)


def decode_payload(schema: Type[SchemaT], payload: str) -> SchemaT:
    """Decode a JSON payload into schema, raising the ledger ValidationError"""
    try:
        return schema.model_validate_json(payload)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid {schema.__name__} payload: {problems}") from e
