from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class MpesaInitiateRequest(BaseModel):
    # Client-sent amount (and anything else) is dropped; the price comes from the template
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    session_id: str | None = None
    phone_number: str | None = Field(
        default=None,
        validation_alias=AliasChoices("phoneNumber", "phone_number"),
    )


class MpesaInitiateResponse(BaseModel):
    success: bool
    session_id: str
    amount: int
    phone: str
    CheckoutRequestID: str | None = None
    MerchantRequestID: str | None = None
    CustomerMessage: str | None = None


class CallbackAck(BaseModel):
    success: bool
    message: str
