"""
Request messages pushed by the platform.

Every variant stores its own tag: msg_type (and event_type for events) is a
literal field set at construction, so the tag never depends on the class
name. Timestamps are milliseconds.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VOICE = "voice"
    VIDEO = "video"
    VIDEO_CLIP = "short_video"
    LOCATION = "location"
    LINK = "link"
    EVENT = "event"


class EventType(str, Enum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    SCAN = "SCAN"
    LOCATION = "LOCATION"
    MENU_CLICK = "CLICK"
    MENU_VIEW = "VIEW"
    MENU_SCAN = "scancode_push"
    MENU_SCAN_WAIT = "scancode_waitmsg"
    MENU_PHOTO = "pic_sysphoto"
    MENU_PHOTO_OR_ALBUM = "pic_photo_or_album"
    MENU_ALBUM = "pic_weixin"
    MENU_LOCATION = "location_select"
    MENU_APPLET = "view_miniprogram"
    TEMPLATE_SEND_RESULT = "TEMPLATESENDJOBFINISH"
    BATCH_SEND_RESULT = "MASSSENDJOBFINISH"
    PUBLISH_RESULT = "PUBLISHJOBFINISH"
    QUALIFICATION_VERIFY_SUCCESS = "qualification_verify_success"
    QUALIFICATION_VERIFY_FAIL = "qualification_verify_fail"
    NAMING_VERIFY_SUCCESS = "naming_verify_success"
    NAMING_VERIFY_FAIL = "naming_verify_fail"
    ANNUAL_RENEW = "annual_renew"
    VERIFY_EXPIRED = "verify_expired"


# =============================================================================
# Base Models
# =============================================================================

class RequestMessage(BaseModel):
    """
    Common envelope of every pushed message.

    - from_open_id: sender (a user's OpenID, or a system account for events)
    - to_account: receiving official account
    - timestamp: creation time in milliseconds
    - msg_id: platform message id
    - msg_data_id: id of the article the message came from, if any
    - idx: article-index markers, set only for messages from multi-article pushes
    """
    model_config = ConfigDict(frozen=True)

    msg_type: MessageType
    from_open_id: str
    to_account: str
    timestamp: int = Field(..., ge=0)
    msg_id: Optional[str] = None
    msg_data_id: Optional[str] = None
    idx: tuple[str, ...] = ()


class EventMessage(RequestMessage):
    """
    Event push. Events carry no MsgId; the sender plus creation time is the
    platform's recommended deduplication key and is used as msg_id.
    """
    msg_type: Literal[MessageType.EVENT] = MessageType.EVENT
    event_type: EventType

    @model_validator(mode="before")
    @classmethod
    def default_msg_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("msg_id"):
            data = {**data, "msg_id": f"{data.get('from_open_id')}{data.get('timestamp')}"}
        return data


# =============================================================================
# Ordinary Messages
# =============================================================================

class TextMessage(RequestMessage):
    msg_type: Literal[MessageType.TEXT] = MessageType.TEXT
    content: str = ""


class ImageMessage(RequestMessage):
    msg_type: Literal[MessageType.IMAGE] = MessageType.IMAGE
    pic_url: Optional[str] = None
    media_id: Optional[str] = None


class VoiceMessage(RequestMessage):
    msg_type: Literal[MessageType.VOICE] = MessageType.VOICE
    media_id: Optional[str] = None
    format: Optional[str] = None
    recognition: Optional[str] = None


class VideoMessage(RequestMessage):
    msg_type: Literal[MessageType.VIDEO] = MessageType.VIDEO
    media_id: Optional[str] = None
    thumb_media_id: Optional[str] = None


class VideoClipMessage(RequestMessage):
    msg_type: Literal[MessageType.VIDEO_CLIP] = MessageType.VIDEO_CLIP
    media_id: Optional[str] = None
    thumb_media_id: Optional[str] = None


class LocationMessage(RequestMessage):
    msg_type: Literal[MessageType.LOCATION] = MessageType.LOCATION
    location_x: Optional[Decimal] = None
    location_y: Optional[Decimal] = None
    scale: Optional[int] = None
    label: Optional[str] = None


class LinkMessage(RequestMessage):
    msg_type: Literal[MessageType.LINK] = MessageType.LINK
    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None


# =============================================================================
# Subscription and Location Events
# =============================================================================

class SubscribeEvent(EventMessage):
    """event_key is 'qrscene_' + scene id when following via a QR code."""
    event_type: Literal[EventType.SUBSCRIBE] = EventType.SUBSCRIBE
    event_key: Optional[str] = None
    ticket: Optional[str] = None


class UnsubscribeEvent(EventMessage):
    event_type: Literal[EventType.UNSUBSCRIBE] = EventType.UNSUBSCRIBE


class ScanEvent(EventMessage):
    """A follower scanned a QR code carrying a scene id."""
    event_type: Literal[EventType.SCAN] = EventType.SCAN
    event_key: Optional[str] = None
    ticket: Optional[str] = None


class LocationEvent(EventMessage):
    event_type: Literal[EventType.LOCATION] = EventType.LOCATION
    latitude: Optional[Decimal] = None
    longitude: Optional[Decimal] = None
    precision: Optional[Decimal] = None


# =============================================================================
# Menu Events
# =============================================================================

class MenuClickEvent(EventMessage):
    event_type: Literal[EventType.MENU_CLICK] = EventType.MENU_CLICK
    event_key: Optional[str] = None


class MenuViewEvent(EventMessage):
    event_type: Literal[EventType.MENU_VIEW] = EventType.MENU_VIEW
    event_key: Optional[str] = None
    menu_id: Optional[str] = None


class MenuScanEvent(EventMessage):
    event_type: Literal[EventType.MENU_SCAN] = EventType.MENU_SCAN
    event_key: Optional[str] = None
    scan_type: Optional[str] = None
    scan_result: Optional[str] = None


class MenuScanWaitEvent(EventMessage):
    event_type: Literal[EventType.MENU_SCAN_WAIT] = EventType.MENU_SCAN_WAIT
    event_key: Optional[str] = None
    scan_type: Optional[str] = None
    scan_result: Optional[str] = None


class MenuPhotoEvent(EventMessage):
    """digests are the MD5 sums of the pictures sent."""
    event_type: Literal[EventType.MENU_PHOTO] = EventType.MENU_PHOTO
    event_key: Optional[str] = None
    count: int = 0
    digests: tuple[str, ...] = ()


class MenuPhotoOrAlbumEvent(EventMessage):
    event_type: Literal[EventType.MENU_PHOTO_OR_ALBUM] = EventType.MENU_PHOTO_OR_ALBUM
    event_key: Optional[str] = None
    count: int = 0
    digests: tuple[str, ...] = ()


class MenuAlbumEvent(EventMessage):
    event_type: Literal[EventType.MENU_ALBUM] = EventType.MENU_ALBUM
    event_key: Optional[str] = None
    count: int = 0
    digests: tuple[str, ...] = ()


class MenuLocationEvent(EventMessage):
    """location_x is the latitude, location_y the longitude."""
    event_type: Literal[EventType.MENU_LOCATION] = EventType.MENU_LOCATION
    event_key: Optional[str] = None
    location_x: Optional[Decimal] = None
    location_y: Optional[Decimal] = None
    scale: Optional[Decimal] = None
    label: Optional[str] = None
    poi_name: Optional[str] = None


class MenuAppletEvent(EventMessage):
    event_type: Literal[EventType.MENU_APPLET] = EventType.MENU_APPLET
    event_key: Optional[str] = None
    menu_id: Optional[str] = None


# =============================================================================
# Job Result Events
# =============================================================================

class TemplateSendResultEvent(EventMessage):
    """status: success, failed:user block, failed: system failed"""
    event_type: Literal[EventType.TEMPLATE_SEND_RESULT] = EventType.TEMPLATE_SEND_RESULT
    status: Optional[str] = None


class BatchSendResultEvent(EventMessage):
    event_type: Literal[EventType.BATCH_SEND_RESULT] = EventType.BATCH_SEND_RESULT
    status: Optional[str] = None
    total_count: Optional[int] = None
    filter_count: Optional[int] = None
    sent_count: Optional[int] = None
    error_count: Optional[int] = None


class PublishResultEvent(EventMessage):
    """publish_status 0 means published; fail_idx lists failed article positions."""
    event_type: Literal[EventType.PUBLISH_RESULT] = EventType.PUBLISH_RESULT
    publish_id: Optional[str] = None
    publish_status: Optional[int] = None
    article_id: Optional[str] = None
    article_urls: tuple[str, ...] = ()
    fail_idx: tuple[str, ...] = ()


# =============================================================================
# Certification Events
# =============================================================================

class QualificationVerifySuccessEvent(EventMessage):
    event_type: Literal[EventType.QUALIFICATION_VERIFY_SUCCESS] = EventType.QUALIFICATION_VERIFY_SUCCESS
    expired_time: Optional[int] = None


class QualificationVerifyFailEvent(EventMessage):
    event_type: Literal[EventType.QUALIFICATION_VERIFY_FAIL] = EventType.QUALIFICATION_VERIFY_FAIL
    fail_time: Optional[int] = None
    fail_reason: Optional[str] = None


class NamingVerifySuccessEvent(EventMessage):
    event_type: Literal[EventType.NAMING_VERIFY_SUCCESS] = EventType.NAMING_VERIFY_SUCCESS
    expired_time: Optional[int] = None


class NamingVerifyFailEvent(EventMessage):
    event_type: Literal[EventType.NAMING_VERIFY_FAIL] = EventType.NAMING_VERIFY_FAIL
    fail_time: Optional[int] = None
    fail_reason: Optional[str] = None


class AnnualRenewEvent(EventMessage):
    event_type: Literal[EventType.ANNUAL_RENEW] = EventType.ANNUAL_RENEW
    expired_time: Optional[int] = None


class VerifyExpiredEvent(EventMessage):
    event_type: Literal[EventType.VERIFY_EXPIRED] = EventType.VERIFY_EXPIRED
    expired_time: Optional[int] = None
