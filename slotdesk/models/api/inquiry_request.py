from pydantic import BaseModel, Field

from slotdesk.models.domain.inquiry_domain import InquiryPriority, InquiryStatus


class InquiryCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    category: str = Field("general", min_length=1, max_length=50)
    priority: InquiryPriority = "normal"
    message: str = Field(..., min_length=1)


class InquiryMessageRequest(BaseModel):
    message: str = Field(..., min_length=1)


class InquiryStatusRequest(BaseModel):
    status: InquiryStatus
