"""
Tests for XML -> request message conversion.

Tests cover:
- Every supported (MsgType, Event) pair
- Nested containers (ScanCodeInfo, SendPicsInfo/PicList, SendLocationInfo, PublishEventInfo)
- Article-index markers and envelope fields
- Unknown types, unknown tags and malformed input
"""

from decimal import Decimal

import pytest

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
from wxmp.parser import VARIANTS, XmlField, flatten, parse, parse_mapping, top_level


ENVELOPE = (
    "<ToUserName><![CDATA[gh_de0f036ce08f]]></ToUserName>"
    "<FromUserName><![CDATA[ooUo26seZPcU3qKfcMiXLneG3fO4]]></FromUserName>"
    "<CreateTime>1668926536</CreateTime>"
)


def message(msg_type: str, body: str = "") -> str:
    return f"<xml>{ENVELOPE}<MsgType><![CDATA[{msg_type}]]></MsgType>{body}</xml>"


def event(event_type: str, body: str = "") -> str:
    return message("event", f"<Event><![CDATA[{event_type}]]></Event>{body}")


class TestFlatten:
    """Test flattening XML into leaf fields."""

    def test_leaves_in_document_order(self):
        fields = flatten("<xml><A>1</A><B><C>2</C><D>3</D></B></xml>")
        assert fields == [
            XmlField("A", "1"),
            XmlField("C", "2", ("B",)),
            XmlField("D", "3", ("B",)),
        ]

    def test_cdata_and_empty(self):
        fields = flatten("<xml><A><![CDATA[x < y]]></A><B/></xml>")
        assert fields == [XmlField("A", "x < y"), XmlField("B", "")]

    def test_top_level(self):
        fields = flatten("<xml><A>1</A><B><A>2</A></B></xml>")
        assert top_level(fields) == {"A": "1"}

    def test_invalid_xml(self):
        with pytest.raises(MalformedMessage):
            flatten("<xml><A>1</xml>")


class TestEnvelope:
    """Test envelope fields common to every message."""

    def test_text_message(self):
        """Test the minimal text message."""
        msg = parse(
            "<xml><ToUserName>A</ToUserName><FromUserName>B</FromUserName><CreateTime>100</CreateTime>"
            "<MsgType>text</MsgType><MsgId>1</MsgId><Content>hi</Content></xml>"
        )
        assert msg == TextMessage(from_open_id="B", to_account="A", timestamp=100000, msg_id="1", content="hi")

    def test_captured_text_message(self):
        msg = parse(
            "<xml><ToUserName><![CDATA[gh_de0f036ce08f]]></ToUserName>\n"
            "<FromUserName><![CDATA[ooUo26seZPcU3qKfcMiXLneG3fO4]]></FromUserName>\n"
            "<CreateTime>1668869541</CreateTime>\n"
            "<MsgType><![CDATA[text]]></MsgType>\n"
            "<Content><![CDATA[文本消息]]></Content>\n"
            "<MsgId>23892468385179204</MsgId>\n"
            "</xml>"
        )
        assert isinstance(msg, TextMessage)
        assert msg.content == "文本消息"
        assert msg.msg_id == "23892468385179204"
        assert msg.timestamp == 1668869541000

    def test_article_markers(self):
        """Test that MsgDataId and Idx markers are kept for messages from article pushes."""
        msg = parse(message("text", "<Content>hi</Content><MsgId>9</MsgId><MsgDataId>42</MsgDataId><Idx>2</Idx>"))
        assert msg.msg_data_id == "42"
        assert msg.idx == ("2",)

    def test_no_article_markers(self):
        msg = parse(message("text", "<Content>hi</Content>"))
        assert msg.msg_data_id is None
        assert msg.idx == ()

    def test_event_msg_id_defaults_to_sender_and_time(self):
        """Test the deduplication key for events, which carry no MsgId."""
        msg = parse(event("subscribe"))
        assert msg.msg_id == "ooUo26seZPcU3qKfcMiXLneG3fO41668926536000"

    def test_missing_sender(self):
        with pytest.raises(MalformedMessage):
            parse("<xml><ToUserName>A</ToUserName><CreateTime>1</CreateTime><MsgType>text</MsgType></xml>")

    def test_bad_create_time(self):
        with pytest.raises(MalformedMessage):
            parse("<xml><ToUserName>A</ToUserName><FromUserName>B</FromUserName>"
                  "<CreateTime>soon</CreateTime><MsgType>text</MsgType></xml>")

    def test_unknown_tag_ignored(self):
        """Test that tags the variant does not know are logged and skipped."""
        msg = parse(message("text", "<Content>hi</Content><Bogus>1</Bogus>"))
        assert msg.content == "hi"

    def test_parse_mapping(self):
        msg = parse_mapping({
            "ToUserName": "A",
            "FromUserName": "B",
            "CreateTime": "5",
            "MsgType": "image",
            "PicUrl": "http://p",
            "MediaId": "m",
        })
        assert msg == ImageMessage(from_open_id="B", to_account="A", timestamp=5000, pic_url="http://p", media_id="m")


class TestUnknownTypes:
    """Test rejection of unsupported payloads."""

    def test_missing_msg_type(self):
        with pytest.raises(UnknownMessageType):
            parse(f"<xml>{ENVELOPE}</xml>")

    def test_unsupported_msg_type(self):
        with pytest.raises(UnknownMessageType) as e:
            parse(message("hologram"))
        assert e.value.msg_type == "hologram"

    def test_missing_event(self):
        with pytest.raises(UnknownEventType):
            parse(message("event"))

    def test_unsupported_event(self):
        with pytest.raises(UnknownEventType) as e:
            parse(event("teleport"))
        assert e.value.event_type == "teleport"

    def test_every_pair_is_registered(self):
        """Test that every message type and event type has a variant."""
        for msg_type in MessageType:
            if msg_type is not MessageType.EVENT:
                assert (msg_type, None) in VARIANTS
        for event_type in EventType:
            assert (MessageType.EVENT, event_type) in VARIANTS


class TestOrdinaryMessages:
    """Test ordinary (non-event) messages."""

    def test_image(self):
        msg = parse(message("image", "<PicUrl>http://p</PicUrl><MediaId>m</MediaId><MsgId>1</MsgId>"))
        assert isinstance(msg, ImageMessage)
        assert (msg.pic_url, msg.media_id) == ("http://p", "m")

    def test_voice(self):
        msg = parse(message("voice", "<MediaId>m</MediaId><Format>amr</Format><Recognition>你好</Recognition>"))
        assert isinstance(msg, VoiceMessage)
        assert (msg.media_id, msg.format, msg.recognition) == ("m", "amr", "你好")

    def test_video(self):
        msg = parse(message("video", "<MediaId>m</MediaId><ThumbMediaId>t</ThumbMediaId>"))
        assert isinstance(msg, VideoMessage)
        assert msg.thumb_media_id == "t"

    def test_short_video(self):
        msg = parse(message("short_video", "<MediaId>m</MediaId><ThumbMediaId>t</ThumbMediaId>"))
        assert isinstance(msg, VideoClipMessage)
        assert msg.msg_type is MessageType.VIDEO_CLIP

    def test_location(self):
        msg = parse(message(
            "location",
            "<Location_X>23.134521</Location_X><Location_Y>113.358803</Location_Y>"
            "<Scale>20</Scale><Label><![CDATA[位置信息]]></Label>",
        ))
        assert isinstance(msg, LocationMessage)
        assert msg.location_x == Decimal("23.134521")
        assert msg.location_y == Decimal("113.358803")
        assert msg.scale == 20
        assert msg.label == "位置信息"

    def test_location_bad_number(self):
        with pytest.raises(MalformedMessage):
            parse(message("location", "<Location_X>north</Location_X>"))

    def test_link(self):
        msg = parse(message("link", "<Title>t</Title><Description>d</Description><Url>http://u</Url>"))
        assert isinstance(msg, LinkMessage)
        assert (msg.title, msg.description, msg.url) == ("t", "d", "http://u")


class TestSubscriptionEvents:
    """Test follow, scan and location events."""

    def test_subscribe(self):
        msg = parse(event("subscribe", "<EventKey><![CDATA[]]></EventKey>"))
        assert isinstance(msg, SubscribeEvent)
        assert msg.event_type is EventType.SUBSCRIBE
        assert msg.event_key == ""

    def test_subscribe_after_scan(self):
        msg = parse(event("subscribe", "<EventKey>qrscene_110</EventKey><Ticket>TICKET</Ticket>"))
        assert (msg.event_key, msg.ticket) == ("qrscene_110", "TICKET")

    def test_unsubscribe_consumes_event_key(self):
        msg = parse(event("unsubscribe", "<EventKey></EventKey>"))
        assert isinstance(msg, UnsubscribeEvent)

    def test_scan(self):
        msg = parse(event("SCAN", "<EventKey>123</EventKey><Ticket>T</Ticket>"))
        assert isinstance(msg, ScanEvent)
        assert msg.event_key == "123"

    def test_location_report(self):
        msg = parse(event("LOCATION", "<Latitude>23.137466</Latitude><Longitude>113.352425</Longitude><Precision>119.385040</Precision>"))
        assert isinstance(msg, LocationEvent)
        assert msg.precision == Decimal("119.385040")


class TestMenuEvents:
    """Test custom menu events, including nested containers."""

    def test_click(self):
        msg = parse(event("CLICK", "<EventKey>V1001_TODAY_MUSIC</EventKey>"))
        assert isinstance(msg, MenuClickEvent)
        assert msg.event_key == "V1001_TODAY_MUSIC"

    def test_view(self):
        msg = parse(event("VIEW", "<EventKey>http://www.qq.com/</EventKey><MenuId>1</MenuId>"))
        assert isinstance(msg, MenuViewEvent)
        assert msg.menu_id == "1"

    def test_applet(self):
        """Test that the mini-program menu event builds its own variant."""
        msg = parse(event("view_miniprogram", "<EventKey>pages/index</EventKey><MenuId>7</MenuId>"))
        assert isinstance(msg, MenuAppletEvent)
        assert msg.event_type is EventType.MENU_APPLET
        assert msg.menu_id == "7"

    @pytest.mark.parametrize("event_type,variant", [
        ("scancode_push", MenuScanEvent),
        ("scancode_waitmsg", MenuScanWaitEvent),
    ])
    def test_scan_code(self, event_type, variant):
        msg = parse(event(
            event_type,
            "<EventKey>6</EventKey><ScanCodeInfo><ScanType>qrcode</ScanType>"
            "<ScanResult>1</ScanResult></ScanCodeInfo>",
        ))
        assert isinstance(msg, variant)
        assert (msg.scan_type, msg.scan_result) == ("qrcode", "1")

    def test_scan_result_outside_container_ignored(self):
        msg = parse(event("scancode_push", "<EventKey>6</EventKey><ScanResult>1</ScanResult>"))
        assert msg.scan_result is None

    @pytest.mark.parametrize("event_type,variant", [
        ("pic_sysphoto", MenuPhotoEvent),
        ("pic_photo_or_album", MenuPhotoOrAlbumEvent),
        ("pic_weixin", MenuAlbumEvent),
    ])
    def test_send_pictures(self, event_type, variant):
        msg = parse(event(
            event_type,
            "<EventKey>6</EventKey><SendPicsInfo><Count>2</Count><PicList>"
            "<item><PicMd5Sum>1b5f7c23b5bf75682a53e7b6d163e185</PicMd5Sum></item>"
            "<item><PicMd5Sum>5a75aaca956d97be686719218f275c6b</PicMd5Sum></item>"
            "</PicList></SendPicsInfo>",
        ))
        assert isinstance(msg, variant)
        assert msg.count == 2
        assert msg.digests == ("1b5f7c23b5bf75682a53e7b6d163e185", "5a75aaca956d97be686719218f275c6b")

    def test_location_select(self):
        msg = parse(event(
            "location_select",
            "<EventKey>6</EventKey><SendLocationInfo><Location_X>23</Location_X><Location_Y>113</Location_Y>"
            "<Scale>15</Scale><Label>广州市</Label><Poiname>塔</Poiname></SendLocationInfo>",
        ))
        assert isinstance(msg, MenuLocationEvent)
        assert msg.location_x == Decimal("23")
        assert msg.scale == Decimal("15")
        assert (msg.label, msg.poi_name) == ("广州市", "塔")


class TestJobResultEvents:
    """Test asynchronous job result notifications."""

    def test_template_send_result(self):
        """Test that the job's MsgID becomes the message id."""
        msg = parse(event("TEMPLATESENDJOBFINISH", "<MsgID>200163836</MsgID><Status>success</Status>"))
        assert isinstance(msg, TemplateSendResultEvent)
        assert msg.msg_id == "200163836"
        assert msg.status == "success"

    def test_batch_send_result(self):
        msg = parse(event(
            "MASSSENDJOBFINISH",
            "<MsgID>1988</MsgID><Status>sendsuccess</Status><TotalCount>100</TotalCount>"
            "<FilterCount>80</FilterCount><SentCount>75</SentCount><ErrorCount>5</ErrorCount>",
        ))
        assert isinstance(msg, BatchSendResultEvent)
        assert (msg.total_count, msg.filter_count, msg.sent_count, msg.error_count) == (100, 80, 75, 5)

    def test_publish_result(self):
        msg = parse(event(
            "PUBLISHJOBFINISH",
            "<PublishEventInfo><publish_id>2247503051</publish_id><publish_status>0</publish_status>"
            "<article_id>b5O2OUs25HBxRceL7hfReg</article_id><article_detail><count>1</count>"
            "<item><idx>1</idx><article_url>http://a/1</article_url></item>"
            "</article_detail></PublishEventInfo>",
        ))
        assert isinstance(msg, PublishResultEvent)
        assert msg.publish_id == "2247503051"
        assert msg.publish_status == 0
        assert msg.article_id == "b5O2OUs25HBxRceL7hfReg"
        assert msg.article_urls == ("http://a/1",)
        assert msg.fail_idx == ()

    def test_publish_failure(self):
        msg = parse(event(
            "PUBLISHJOBFINISH",
            "<PublishEventInfo><publish_id>1</publish_id><publish_status>2</publish_status>"
            "<fail_idx>1</fail_idx><fail_idx>2</fail_idx></PublishEventInfo>",
        ))
        assert msg.publish_status == 2
        assert msg.fail_idx == ("1", "2")


class TestCertificationEvents:
    """Test certification and renewal notifications."""

    @pytest.mark.parametrize("event_type,variant", [
        ("qualification_verify_success", QualificationVerifySuccessEvent),
        ("naming_verify_success", NamingVerifySuccessEvent),
        ("annual_renew", AnnualRenewEvent),
        ("verify_expired", VerifyExpiredEvent),
    ])
    def test_expiry(self, event_type, variant):
        msg = parse(event(event_type, "<ExpiredTime>1442401156</ExpiredTime>"))
        assert isinstance(msg, variant)
        assert msg.expired_time == 1442401156000

    @pytest.mark.parametrize("event_type,variant", [
        ("qualification_verify_fail", QualificationVerifyFailEvent),
        ("naming_verify_fail", NamingVerifyFailEvent),
    ])
    def test_failure(self, event_type, variant):
        msg = parse(event(event_type, "<FailTime>1442401122</FailTime><FailReason>by time</FailReason>"))
        assert isinstance(msg, variant)
        assert msg.fail_time == 1442401122000
        assert msg.fail_reason == "by time"

    def test_renewal_and_expiry_are_distinct(self):
        assert type(parse(event("annual_renew"))) is not type(parse(event("verify_expired")))
