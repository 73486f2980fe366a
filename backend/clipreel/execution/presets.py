"""
Fixed format and quality presets.

Format and quality are independent lookups, so every one of the nine
combinations is legal.
"""

from typing import Dict

from pydantic import BaseModel, ConfigDict

from ..jobs.models import OutputFormat, Quality


class FormatPreset(BaseModel):
    """Target frame size for one aspect ratio."""
    
    model_config = ConfigDict(extra="forbid", frozen=True)
    
    width: int
    height: int
    name: str


class QualityPreset(BaseModel):
    """x264 rate control and speed settings."""
    
    model_config = ConfigDict(extra="forbid", frozen=True)
    
    crf: int
    preset: str
    bitrate_mbps: int
    
    @property
    def bitrate(self) -> str:
        """Peak video bitrate in ffmpeg notation (e.g. '4M')."""
        return f"{self.bitrate_mbps}M"
    
    @property
    def bufsize(self) -> str:
        """Rate-control buffer, two seconds at peak bitrate."""
        return f"{self.bitrate_mbps * 2}M"


FORMAT_PRESETS: Dict[OutputFormat, FormatPreset] = {
    OutputFormat.LANDSCAPE: FormatPreset(width=1920, height=1080, name="YouTube/Twitch"),
    OutputFormat.PORTRAIT: FormatPreset(width=1080, height=1920, name="TikTok/Reels"),
    OutputFormat.SQUARE: FormatPreset(width=1080, height=1080, name="Instagram"),
}

QUALITY_PRESETS: Dict[Quality, QualityPreset] = {
    Quality.LOW: QualityPreset(crf=28, preset="fast", bitrate_mbps=2),
    Quality.MEDIUM: QualityPreset(crf=23, preset="medium", bitrate_mbps=4),
    Quality.HIGH: QualityPreset(crf=18, preset="slow", bitrate_mbps=8),
}
