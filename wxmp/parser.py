"""
Conversion of pushed XML into typed request messages.

The document is first flattened into ordered leaf fields. Each field keeps
the path of containers between the root element and itself, so rules for
nested values (picture digests inside PicList, scan results inside
ScanCodeInfo) are expressed as "tag X within container Y" instead of
stateful flags.

Parsing is total over the supported (MsgType, Event) pairs and rejects
everything else.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Mapping, NamedTuple, Optional, Union
from xml.etree import ElementTree

from pydantic import ValidationError

from wxmp.errors import MalformedMessage, UnknownEventType, UnknownMessageType
from wxmp.messages import (
    AnnualRenewEvent,
    BatchSendResultEvent,
    EventType,
    ImageMessage,
    LinkMessage,
    LocationEvent,
    LocationMessage,
    MenuAlbumEvent,
    MenuAppletEvent,
    MenuClickEvent,
    MenuLocationEvent,
    MenuPhotoEvent,
    MenuPhotoOrAlbumEvent,
    MenuScanEvent,
    MenuScanWaitEvent,
    MenuViewEvent,
    MessageType,
    NamingVerifyFailEvent,
    NamingVerifySuccessEvent,
    PublishResultEvent,
    QualificationVerifyFailEvent,
    QualificationVerifySuccessEvent,
    RequestMessage,
    ScanEvent,
    SubscribeEvent,
    TemplateSendResultEvent,
    TextMessage,
    UnsubscribeEvent,
    VerifyExpiredEvent,
    VideoClipMessage,
    VideoMessage,
    VoiceMessage,
)

logger = logging.getLogger(__name__)

ENCRYPT_TAG = "Encrypt"
TO_TAG = "ToUserName"
FROM_TAG = "FromUserName"
CREATE_TIME_TAG = "CreateTime"
MSG_TYPE_TAG = "MsgType"
EVENT_TAG = "Event"
MSG_ID_TAG = "MsgId"
MSG_DATA_ID_TAG = "MsgDataId"
ARTICLE_INDEX_PREFIX = "Id"


class XmlField(NamedTuple):
    """A leaf element: its tag, text and enclosing containers (root excluded)."""
    tag: str
    text: str
    path: tuple[str, ...] = ()


def flatten(xml: Union[str, bytes]) -> list[XmlField]:
    """
    Flatten an XML document into its leaf fields, in document order.

    Raises:
        MalformedMessage: document is not well-formed XML
    """
    try:
        root = ElementTree.fromstring(xml)
    except ElementTree.ParseError as e:
        raise MalformedMessage(f"invalid XML: {e}") from e

    fields: list[XmlField] = []

    def walk(element: ElementTree.Element, path: tuple[str, ...]) -> None:
        for child in element:
            if len(child):
                walk(child, path + (child.tag,))
            else:
                fields.append(XmlField(child.tag, child.text or "", path))

    walk(root, ())
    return fields


def top_level(fields: Iterable[XmlField]) -> dict[str, str]:
    """Tag -> text of the fields directly under the root element."""
    return {field.tag: field.text for field in fields if not field.path}


# =============================================================================
# Field Rules
# =============================================================================

def millis(text: str) -> int:
    """Platform times are in seconds."""
    return int(text) * 1000


class Rule(NamedTuple):
    """
    How an accumulator stores one tag.

    - name: model field; None consumes the tag without storing it
    - convert: text -> value
    - within: container that must enclose the tag
    - repeated: collect every occurrence into a list
    """
    name: Optional[str]
    convert: Callable[[str], Any] = str
    within: Optional[str] = None
    repeated: bool = False


EVENT_KEY = {"EventKey": Rule("event_key")}
MEDIA_ID = {"MediaId": Rule("media_id")}
MENU_ID = {"MenuId": Rule("menu_id"), "MenuID": Rule("menu_id")}

SCAN_CODE = {
    **EVENT_KEY,
    "ScanType": Rule("scan_type", within="ScanCodeInfo"),
    "ScanResult": Rule("scan_result", within="ScanCodeInfo"),
}

SEND_PICTURES = {
    **EVENT_KEY,
    "Count": Rule("count", int, within="SendPicsInfo"),
    "PicMd5Sum": Rule("digests", within="PicList", repeated=True),
}

EXPIRY = {"ExpiredTime": Rule("expired_time", millis)}

FAILURE = {
    "FailTime": Rule("fail_time", millis),
    "FailReason": Rule("fail_reason"),
}


class VariantSpec(NamedTuple):
    variant: type[RequestMessage]
    rules: Mapping[str, Optional[Rule]]


VARIANTS: dict[tuple[MessageType, Optional[EventType]], VariantSpec] = {
    (MessageType.TEXT, None): VariantSpec(TextMessage, {"Content": Rule("content")}),
    (MessageType.IMAGE, None): VariantSpec(ImageMessage, {"PicUrl": Rule("pic_url"), **MEDIA_ID}),
    (MessageType.VOICE, None): VariantSpec(VoiceMessage, {
        **MEDIA_ID,
        "Format": Rule("format"),
        "Recognition": Rule("recognition"),
    }),
    (MessageType.VIDEO, None): VariantSpec(VideoMessage, {**MEDIA_ID, "ThumbMediaId": Rule("thumb_media_id")}),
    (MessageType.VIDEO_CLIP, None): VariantSpec(VideoClipMessage, {**MEDIA_ID, "ThumbMediaId": Rule("thumb_media_id")}),
    (MessageType.LOCATION, None): VariantSpec(LocationMessage, {
        "Location_X": Rule("location_x", Decimal),
        "Location_Y": Rule("location_y", Decimal),
        "Scale": Rule("scale", int),
        "Label": Rule("label"),
    }),
    (MessageType.LINK, None): VariantSpec(LinkMessage, {
        "Title": Rule("title"),
        "Description": Rule("description"),
        "Url": Rule("url"),
    }),

    (MessageType.EVENT, EventType.SUBSCRIBE): VariantSpec(SubscribeEvent, {**EVENT_KEY, "Ticket": Rule("ticket")}),
    (MessageType.EVENT, EventType.UNSUBSCRIBE): VariantSpec(UnsubscribeEvent, {"EventKey": None}),
    (MessageType.EVENT, EventType.SCAN): VariantSpec(ScanEvent, {**EVENT_KEY, "Ticket": Rule("ticket")}),
    (MessageType.EVENT, EventType.LOCATION): VariantSpec(LocationEvent, {
        "Latitude": Rule("latitude", Decimal),
        "Longitude": Rule("longitude", Decimal),
        "Precision": Rule("precision", Decimal),
    }),
    (MessageType.EVENT, EventType.MENU_CLICK): VariantSpec(MenuClickEvent, EVENT_KEY),
    (MessageType.EVENT, EventType.MENU_VIEW): VariantSpec(MenuViewEvent, {**EVENT_KEY, **MENU_ID}),
    (MessageType.EVENT, EventType.MENU_SCAN): VariantSpec(MenuScanEvent, SCAN_CODE),
    (MessageType.EVENT, EventType.MENU_SCAN_WAIT): VariantSpec(MenuScanWaitEvent, SCAN_CODE),
    (MessageType.EVENT, EventType.MENU_PHOTO): VariantSpec(MenuPhotoEvent, SEND_PICTURES),
    (MessageType.EVENT, EventType.MENU_PHOTO_OR_ALBUM): VariantSpec(MenuPhotoOrAlbumEvent, SEND_PICTURES),
    (MessageType.EVENT, EventType.MENU_ALBUM): VariantSpec(MenuAlbumEvent, SEND_PICTURES),
    (MessageType.EVENT, EventType.MENU_LOCATION): VariantSpec(MenuLocationEvent, {
        **EVENT_KEY,
        "Location_X": Rule("location_x", Decimal, within="SendLocationInfo"),
        "Location_Y": Rule("location_y", Decimal, within="SendLocationInfo"),
        "Scale": Rule("scale", Decimal, within="SendLocationInfo"),
        "Label": Rule("label", within="SendLocationInfo"),
        "Poiname": Rule("poi_name", within="SendLocationInfo"),
    }),
    (MessageType.EVENT, EventType.MENU_APPLET): VariantSpec(MenuAppletEvent, {**EVENT_KEY, **MENU_ID}),

    (MessageType.EVENT, EventType.TEMPLATE_SEND_RESULT): VariantSpec(TemplateSendResultEvent, {
        "MsgID": Rule("msg_id"),
        "Status": Rule("status"),
    }),
    (MessageType.EVENT, EventType.BATCH_SEND_RESULT): VariantSpec(BatchSendResultEvent, {
        "MsgID": Rule("msg_id"),
        "Status": Rule("status"),
        "TotalCount": Rule("total_count", int),
        "FilterCount": Rule("filter_count", int),
        "SentCount": Rule("sent_count", int),
        "ErrorCount": Rule("error_count", int),
    }),
    (MessageType.EVENT, EventType.PUBLISH_RESULT): VariantSpec(PublishResultEvent, {
        "publish_id": Rule("publish_id", within="PublishEventInfo"),
        "publish_status": Rule("publish_status", int, within="PublishEventInfo"),
        "article_id": Rule("article_id", within="PublishEventInfo"),
        "article_url": Rule("article_urls", within="article_detail", repeated=True),
        "fail_idx": Rule("fail_idx", within="PublishEventInfo", repeated=True),
        "count": None,
        "idx": None,
    }),

    (MessageType.EVENT, EventType.QUALIFICATION_VERIFY_SUCCESS): VariantSpec(QualificationVerifySuccessEvent, EXPIRY),
    (MessageType.EVENT, EventType.QUALIFICATION_VERIFY_FAIL): VariantSpec(QualificationVerifyFailEvent, FAILURE),
    (MessageType.EVENT, EventType.NAMING_VERIFY_SUCCESS): VariantSpec(NamingVerifySuccessEvent, EXPIRY),
    (MessageType.EVENT, EventType.NAMING_VERIFY_FAIL): VariantSpec(NamingVerifyFailEvent, FAILURE),
    (MessageType.EVENT, EventType.ANNUAL_RENEW): VariantSpec(AnnualRenewEvent, EXPIRY),
    (MessageType.EVENT, EventType.VERIFY_EXPIRED): VariantSpec(VerifyExpiredEvent, EXPIRY),
}


# =============================================================================
# Accumulator
# =============================================================================

def _convert(convert: Callable[[str], Any], field: XmlField) -> Any:
    try:
        return convert(field.text.strip() if convert is not str else field.text)
    except (ValueError, InvalidOperation) as e:
        raise MalformedMessage(f"invalid value for <{field.tag}>: {field.text!r}") from e


class Accumulator:
    """Collects the variant-specific fields of one message."""

    def __init__(self, spec: VariantSpec):
        self.spec = spec
        self.values: dict[str, Any] = {}

    def collect(self, field: XmlField) -> None:
        if field.tag not in self.spec.rules:
            logger.warning(f"Unknown tag <{field.tag}> for {self.spec.variant.__name__}: {field.text!r}")
            return
        rule = self.spec.rules[field.tag]
        if rule is None:
            return
        if rule.within is not None and rule.within not in field.path:
            logger.warning(f"Tag <{field.tag}> outside <{rule.within}> ignored: {field.text!r}")
            return

        value = _convert(rule.convert, field)
        if rule.repeated:
            self.values.setdefault(rule.name, []).append(value)
        else:
            self.values[rule.name] = value

    def build(self, envelope: dict[str, Any]) -> RequestMessage:
        try:
            return self.spec.variant(**{**envelope, **self.values})
        except ValidationError as e:
            raise MalformedMessage(f"incomplete {self.spec.variant.__name__}: {e}") from e


# =============================================================================
# Entry Points
# =============================================================================

def select(msg_type: Optional[str], event_type: Optional[str]) -> VariantSpec:
    """
    Find the variant registered for a (MsgType, Event) pair.

    Raises:
        UnknownMessageType: MsgType absent or unsupported
        UnknownEventType: Event absent or unsupported for an event push
    """
    try:
        message_type = MessageType(msg_type)
    except ValueError:
        raise UnknownMessageType(msg_type) from None

    if message_type is not MessageType.EVENT:
        return VARIANTS[(message_type, None)]

    try:
        event = EventType(event_type)
    except ValueError:
        raise UnknownEventType(event_type) from None
    return VARIANTS[(message_type, event)]


def parse_fields(fields: Iterable[XmlField]) -> RequestMessage:
    """
    Build the typed message for a sequence of flattened fields.

    Envelope tags directly under the root are read here; tags starting with
    "Id" are article-index markers; everything else is handed to the
    variant's accumulator.
    """
    fields = list(fields)
    header = top_level(fields)
    accumulator = Accumulator(select(header.get(MSG_TYPE_TAG), header.get(EVENT_TAG)))

    envelope: dict[str, Any] = {}
    idx: list[str] = []
    for field in fields:
        if not field.path and field.tag in (MSG_TYPE_TAG, EVENT_TAG):
            continue
        elif not field.path and field.tag == TO_TAG:
            envelope["to_account"] = field.text
        elif not field.path and field.tag == FROM_TAG:
            envelope["from_open_id"] = field.text
        elif not field.path and field.tag == CREATE_TIME_TAG:
            envelope["timestamp"] = _convert(millis, field)
        elif not field.path and field.tag == MSG_ID_TAG:
            envelope["msg_id"] = field.text
        elif not field.path and field.tag == MSG_DATA_ID_TAG:
            envelope["msg_data_id"] = field.text
        elif field.tag.startswith(ARTICLE_INDEX_PREFIX):
            idx.append(field.text)
        else:
            accumulator.collect(field)

    if idx:
        envelope["idx"] = idx
    return accumulator.build(envelope)


def parse_mapping(mapping: Mapping[str, str]) -> RequestMessage:
    """Parse a flat, ordered tag -> text mapping (all tags top level)."""
    return parse_fields(XmlField(tag, text or "") for tag, text in mapping.items())


def parse(xml: Union[str, bytes]) -> RequestMessage:
    """Parse a pushed XML document into its typed message."""
    return parse_fields(flatten(xml))
