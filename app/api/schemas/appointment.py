from datetime import datetime

from pydantic import BaseModel, Field

# Upper bound of the INTEGER id columns
MAX_ID = 2**31 - 1


class StoreAppointmentRequest(BaseModel):
    provider_id: int = Field(gt=0, le=MAX_ID)
    date: datetime
