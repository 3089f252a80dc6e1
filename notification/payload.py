"""
Decoding of inbound "item restocked" queue messages.

Message body:
    {"userId": str|null, "guestId": str|null, "itemId": number,
     "skuid": str, "screen": str|null, "sourceType": str|null,
     "sourceName": str|null, ...}

At least one of userId/guestId must be non-blank, itemId must be an integer
(numeric strings are accepted) within the signed 64-bit range and skuid
must be non-blank. userId, guestId and skuid are capped at 64 characters.
Extra fields are allowed and kept in the raw payload.
"""

import json
from typing import Optional, Dict, Any, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator, model_validator

from notification.exceptions import InvalidMessageError

# Widths of the event store columns these values land in
MAX_ID_LENGTH = 64
MIN_ITEM_ID = -2 ** 63
MAX_ITEM_ID = 2 ** 63 - 1


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _check_id_length(name: str, text: Optional[str]) -> Optional[str]:
    if text is not None and len(text) > MAX_ID_LENGTH:
        raise ValueError(f"{name} is longer than {MAX_ID_LENGTH} characters")
    return text


class StockMessagePayload(BaseModel):
    """Validated view of a queue message body."""
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias='userId')
    guest_id: Optional[str] = Field(default=None, alias='guestId')
    item_id: int = Field(alias='itemId')
    sku: str = Field(alias='skuid')
    screen: Optional[str] = None
    source_type: Optional[str] = Field(default=None, alias='sourceType')
    source_name: Optional[str] = Field(default=None, alias='sourceName')

    @field_validator('screen', 'source_type', 'source_name', mode='before')
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator('user_id', 'guest_id', mode='before')
    @classmethod
    def _recipient_ids(cls, value: Any, info: ValidationInfo) -> Optional[str]:
        name = 'userId' if info.field_name == 'user_id' else 'guestId'
        return _check_id_length(name, _blank_to_none(value))

    @field_validator('item_id', mode='before')
    @classmethod
    def _item_id(cls, value: Any) -> int:
        if value is None or isinstance(value, bool):
            raise ValueError("itemId is required")
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError("itemId must be an integer")
            item_id = int(value)
        elif isinstance(value, int):
            item_id = value
        else:
            try:
                item_id = int(str(value).strip())
            except ValueError:
                raise ValueError(f"itemId is not numeric: {value!r}")
        if not MIN_ITEM_ID <= item_id <= MAX_ITEM_ID:
            raise ValueError(f"itemId is out of range: {item_id}")
        return item_id

    @field_validator('sku', mode='before')
    @classmethod
    def _sku(cls, value: Any) -> str:
        text = _blank_to_none(value)
        if text is None:
            raise ValueError("skuid is required")
        return _check_id_length("skuid", text)

    @model_validator(mode='after')
    def _has_recipient(self) -> "StockMessagePayload":
        if not self.user_id and not self.guest_id:
            raise ValueError("message has neither userId nor guestId")
        return self

    @property
    def recipient_id(self) -> str:
        """userId takes priority; guestId is the fallback identity."""
        return self.user_id or self.guest_id


def decode_message_body(body: str) -> Tuple[StockMessagePayload, Dict[str, Any]]:
    """
    Parse and validate a message body.

    Returns:
        (payload, raw) where raw is the decoded JSON object

    Raises:
        InvalidMessageError: If the body is not a JSON object or fails validation
    """
    try:
        raw = json.loads(body)
    except (TypeError, ValueError) as e:
        raise InvalidMessageError(f"Message body is not valid JSON: {e}")

    if not isinstance(raw, dict):
        raise InvalidMessageError("Message body is not a JSON object")

    try:
        payload = StockMessagePayload.model_validate(raw)
    except ValidationError as e:
        reasons = "; ".join(err['msg'] for err in e.errors())
        raise InvalidMessageError(f"Invalid stock notification message: {reasons}")

    return payload, raw
