"""
Reply messages and their wire renderings.

A reply renders to the passive-reply XML envelope returned in the HTTP
response, and to the JSON body of the customer-service API for proactive
pushes. Two sentinels stand for protocol-level answers: ACKNOWLEDGE
("success") and SUPPRESS (empty body, the platform will not retry).
"""

import json
import time
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from wxmp.messages import RequestMessage

ACK_CONTENT = "success"


def cdata(value: Optional[Any]) -> str:
    """Wrap text in CDATA, splitting any embedded terminator."""
    text = "" if value is None else str(value)
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def now_millis() -> int:
    return int(time.time() * 1000)


class ReplyMessage(BaseModel):
    """
    Base reply.

    - to_open_id: receiving user
    - from_account: replying official account
    - timestamp: creation time in milliseconds (rendered in seconds)
    """
    model_config = ConfigDict(frozen=True)

    msg_type: str
    to_open_id: str = ""
    from_account: str = ""
    timestamp: int = 0

    @property
    def is_sentinel(self) -> bool:
        return False

    def addressed_to(self, msg: RequestMessage, timestamp: Optional[int] = None) -> "ReplyMessage":
        """Copy of this reply answering msg (sender and receiver swapped)."""
        return self.model_copy(update={
            "to_open_id": msg.from_open_id,
            "from_account": msg.to_account,
            "timestamp": now_millis() if timestamp is None else timestamp,
        })

    def xml_body(self) -> list[str]:
        """Type-specific XML lines; subclasses must override this."""
        raise NotImplementedError

    def json_body(self) -> dict[str, Any]:
        """Type-specific JSON payload; subclasses must override this."""
        raise NotImplementedError

    def to_xml(self) -> str:
        lines = [
            "<xml>",
            f"<ToUserName>{cdata(self.to_open_id)}</ToUserName>",
            f"<FromUserName>{cdata(self.from_account)}</FromUserName>",
            f"<CreateTime>{self.timestamp // 1000}</CreateTime>",
            f"<MsgType>{cdata(self.msg_type)}</MsgType>",
            *self.xml_body(),
            "</xml>",
        ]
        return "\n".join(lines)

    def to_json(self) -> str:
        body = {"touser": self.to_open_id, "msgtype": self.msg_type, self.msg_type: self.json_body()}
        return json.dumps(body, ensure_ascii=False, separators=(",", ":"))


# =============================================================================
# Sentinels
# =============================================================================

class Acknowledge(ReplyMessage):
    msg_type: Literal["ack"] = "ack"

    @property
    def is_sentinel(self) -> bool:
        return True

    def addressed_to(self, msg: RequestMessage, timestamp: Optional[int] = None) -> "ReplyMessage":
        return self

    def to_xml(self) -> str:
        return ACK_CONTENT

    def to_json(self) -> str:
        raise TypeError("acknowledgement has no JSON form")


class Suppress(ReplyMessage):
    msg_type: Literal["suppress"] = "suppress"

    @property
    def is_sentinel(self) -> bool:
        return True

    def addressed_to(self, msg: RequestMessage, timestamp: Optional[int] = None) -> "ReplyMessage":
        return self

    def to_xml(self) -> str:
        return ""

    def to_json(self) -> str:
        raise TypeError("suppression has no JSON form")


ACKNOWLEDGE = Acknowledge()
SUPPRESS = Suppress()


# =============================================================================
# Content Replies
# =============================================================================

class TextReply(ReplyMessage):
    msg_type: Literal["text"] = "text"
    content: str

    def xml_body(self) -> list[str]:
        return [f"<Content>{cdata(self.content)}</Content>"]

    def json_body(self) -> dict[str, Any]:
        return {"content": self.content}


class ImageReply(ReplyMessage):
    msg_type: Literal["image"] = "image"
    media_id: str

    def xml_body(self) -> list[str]:
        return ["<Image>", f"<MediaId>{cdata(self.media_id)}</MediaId>", "</Image>"]

    def json_body(self) -> dict[str, Any]:
        return {"media_id": self.media_id}


class VoiceReply(ReplyMessage):
    msg_type: Literal["voice"] = "voice"
    media_id: str

    def xml_body(self) -> list[str]:
        return ["<Voice>", f"<MediaId>{cdata(self.media_id)}</MediaId>", "</Voice>"]

    def json_body(self) -> dict[str, Any]:
        return {"media_id": self.media_id}


class VideoReply(ReplyMessage):
    msg_type: Literal["video"] = "video"
    media_id: str
    thumb_media_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None

    def xml_body(self) -> list[str]:
        return [
            "<Video>",
            f"<MediaId>{cdata(self.media_id)}</MediaId>",
            f"<Title>{cdata(self.title)}</Title>",
            f"<Description>{cdata(self.description)}</Description>",
            "</Video>",
        ]

    def json_body(self) -> dict[str, Any]:
        return {
            "media_id": self.media_id,
            "thumb_media_id": self.thumb_media_id,
            "title": self.title,
            "description": self.description,
        }


class MusicReply(ReplyMessage):
    msg_type: Literal["music"] = "music"
    title: Optional[str] = None
    description: Optional[str] = None
    music_url: Optional[str] = None
    hq_music_url: Optional[str] = None
    thumb_media_id: str

    def xml_body(self) -> list[str]:
        return [
            "<Music>",
            f"<Title>{cdata(self.title)}</Title>",
            f"<Description>{cdata(self.description)}</Description>",
            f"<MusicUrl>{cdata(self.music_url)}</MusicUrl>",
            f"<HQMusicUrl>{cdata(self.hq_music_url)}</HQMusicUrl>",
            f"<ThumbMediaId>{cdata(self.thumb_media_id)}</ThumbMediaId>",
            "</Music>",
        ]

    def json_body(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "musicurl": self.music_url,
            "hqmusicurl": self.hq_music_url,
            "thumb_media_id": self.thumb_media_id,
        }


class Article(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: Optional[str] = None
    pic_url: Optional[str] = None
    url: Optional[str] = None


class NewsReply(ReplyMessage):
    """The platform shows at most one article in a passive reply."""
    msg_type: Literal["news"] = "news"
    articles: tuple[Article, ...] = Field(..., min_length=1)

    def xml_body(self) -> list[str]:
        lines = [f"<ArticleCount>{len(self.articles)}</ArticleCount>", "<Articles>"]
        for article in self.articles:
            lines += [
                "<item>",
                f"<Title>{cdata(article.title)}</Title>",
                f"<Description>{cdata(article.description)}</Description>",
                f"<PicUrl>{cdata(article.pic_url)}</PicUrl>",
                f"<Url>{cdata(article.url)}</Url>",
                "</item>",
            ]
        lines.append("</Articles>")
        return lines

    def json_body(self) -> dict[str, Any]:
        return {
            "articles": [
                {
                    "title": article.title,
                    "description": article.description,
                    "url": article.url,
                    "picurl": article.pic_url,
                }
                for article in self.articles
            ]
        }


ContentReply = Annotated[
    Union[TextReply, ImageReply, VoiceReply, VideoReply, MusicReply, NewsReply],
    Field(discriminator="msg_type"),
]

content_reply_adapter: TypeAdapter = TypeAdapter(ContentReply)
