"""Verification request schema and the tagged outcome union."""

from typing import Annotated, Literal, Union

from pydantic import AliasChoices, BaseModel, Field, StringConstraints

Identifier = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class VerifyRequest(BaseModel):
    """Confirmation claim plus the user/target pair it should unlock.

    The signed fields are passed to the HMAC check exactly as received.
    """

    # The widget hands back `razorpay_*` keys; clients may relay them as-is.
    order_id: str = Field(
        min_length=1, validation_alias=AliasChoices("orderId", "order_id", "razorpay_order_id")
    )
    payment_id: str = Field(
        min_length=1, validation_alias=AliasChoices("paymentId", "payment_id", "razorpay_payment_id")
    )
    signature: str = Field(
        min_length=1, validation_alias=AliasChoices("signature", "razorpay_signature")
    )
    user_id: Identifier = Field(validation_alias=AliasChoices("userId", "user_id"))
    target_id: Identifier = Field(validation_alias=AliasChoices("targetId", "target_id", "guideId"))


class Unlocked(BaseModel):
    """Signature valid and the entitlement is recorded."""

    outcome: Literal["unlocked"] = "unlocked"
    order_id: str
    already_granted: bool = False


class VerificationFailed(BaseModel):
    """Signature mismatch or replayed claim; nothing was written."""

    outcome: Literal["verification_failed"] = "verification_failed"
    order_id: str
    reason: str


class GrantFailedCritical(BaseModel):
    """Payment verified/captured but the entitlement write failed.

    Never retry the payment for this outcome; the case is queued for support.
    """

    outcome: Literal["grant_failed_critical"] = "grant_failed_critical"
    order_id: str
    payment_id: str
    case_id: str | None = None


VerifyOutcome = Annotated[
    Union[Unlocked, VerificationFailed, GrantFailedCritical],
    Field(discriminator="outcome"),
]
