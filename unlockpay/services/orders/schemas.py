"""API request/response schemas for order endpoints."""

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr


class OrderCreateRequest(BaseModel):
    """Order creation payload accepted from checkout clients."""

    model_config = ConfigDict(str_strip_whitespace=True)

    amount: StrictInt = Field(gt=0, description="Minor currency units (paise, cents).")
    currency: StrictStr = Field(min_length=1)
    receipt: StrictStr = Field(min_length=1)
    notes: dict[str, str] = Field(default_factory=dict)


class Order(BaseModel):
    """Gateway order; unknown gateway fields are preserved."""

    model_config = ConfigDict(extra="allow")

    id: str
    amount: int
    currency: str
    receipt: str | None = None
    notes: dict[str, str] | list = Field(default_factory=dict)
    status: str = "created"
