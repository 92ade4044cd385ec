"""
File types accepted for platform media, and their aliases.
"""

from enum import Enum
from pathlib import PurePath
from typing import Optional


class FileType(str, Enum):
    # images
    JPG = "jpg"
    JPEG = "jpeg"
    PNG = "png"
    BMP = "bmp"
    GIF = "gif"
    TIF = "tif"
    TIFF = "tiff"
    WEBP = "webp"
    PSD = "psd"
    # audio
    WMA = "wma"
    WAV = "wav"
    AMR = "amr"
    MP3 = "mp3"
    M4A = "m4a"
    FLAC = "flac"
    APE = "ape"
    # video
    MP4 = "mp4"
    RM = "rm"
    RMVB = "rmvb"
    TS = "ts"
    TSA = "tsa"
    TSV = "tsv"
    AVI = "avi"
    FLV = "flv"
    MKV = "mkv"
    MOV = "mov"
    # office
    RTF = "rtf"
    PPT = "ppt"
    XLS = "xls"
    DOC = "doc"
    # archives
    RAR = "rar"
    ZIP = "zip"
    ARJ = "arj"
    JAR = "jar"

    @classmethod
    def of(cls, name: str) -> Optional["FileType"]:
        """Type for an extension or file name, case-insensitive."""
        suffix = PurePath(name).suffix or name
        try:
            return cls(suffix.lstrip(".").lower())
        except ValueError:
            return None


_ALIAS_GROUPS = (
    (FileType.JPG, FileType.JPEG),
    (FileType.TIF, FileType.TIFF),
    (FileType.WMA, FileType.WAV),
    (FileType.RM, FileType.RMVB),
    (FileType.TS, FileType.TSA, FileType.TSV),
)

ALIASES: dict[FileType, frozenset[FileType]] = {
    member: frozenset(group) - {member}
    for group in _ALIAS_GROUPS
    for member in group
}


def aliases(file_type: FileType) -> frozenset[FileType]:
    return ALIASES.get(file_type, frozenset())


class MaterialType(str, Enum):
    IMAGE = "image"
    VOICE = "voice"
    VIDEO = "video"
    THUMB = "thumb"


# material -> (size limit in KiB, accepted file types)
MATERIAL_LIMITS: dict[MaterialType, tuple[int, frozenset[FileType]]] = {
    MaterialType.IMAGE: (10 * 1024, frozenset({FileType.BMP, FileType.PNG, FileType.JPEG, FileType.JPG, FileType.GIF})),
    MaterialType.VOICE: (2 * 1024, frozenset({FileType.WMA, FileType.WAV, FileType.AMR, FileType.MP3})),
    MaterialType.VIDEO: (10 * 1024, frozenset({FileType.MP4})),
    MaterialType.THUMB: (64, frozenset({FileType.JPG})),
}


def accepts(material: MaterialType, filename: str, size: Optional[int] = None) -> bool:
    """
    Whether a file can be uploaded as the given material.

    Args:
        material: Target material type
        filename: File name or bare extension
        size: File size in bytes, if known
    """
    limit_kib, accepted = MATERIAL_LIMITS[material]
    file_type = FileType.of(filename)
    if file_type is None:
        return False
    if file_type not in accepted and not (aliases(file_type) & accepted):
        return False
    return size is None or size <= limit_kib * 1024
