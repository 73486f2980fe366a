"""
FFmpeg stderr progress markers.

FFmpeg writes status lines to stderr in this format:
    frame=   24 fps= 12 q=28.0 size=       0kB time=00:00:01.00 bitrate=   0.0kbits/s

The compositor hands every stderr line to a ProgressHeuristic and nudges
job progress each time the heuristic reports a marker. The default
heuristic only recognizes that a timestamp was printed; it does not know
the total duration, so it cannot produce a real fraction.
"""

import re
from abc import ABC, abstractmethod
from typing import Optional


# Matches: time=00:00:01.00 or time=00:01:23.45
TIME_PATTERN = re.compile(r'time=(\d{2}):(\d{2}):(\d{2})')


def parse_timestamp(line: str) -> Optional[float]:
    """
    Extract the time= position from an FFmpeg status line.
    
    Returns:
        Position in whole seconds, or None if the line has no timestamp
    """
    match = TIME_PATTERN.search(line)
    if not match:
        return None
    hours, minutes, seconds = (int(g) for g in match.groups())
    return float(hours * 3600 + minutes * 60 + seconds)


class ProgressHeuristic(ABC):
    """
    Decides which stderr lines count as progress markers.
    """
    
    @abstractmethod
    def feed(self, line: str) -> bool:
        """
        Inspect one stderr line.
        
        Returns:
            True if the line is a progress marker
        """
        ...


class TimestampMarkerHeuristic(ProgressHeuristic):
    """Every line carrying a time=HH:MM:SS field is a marker."""
    
    def __init__(self):
        self.markers_seen = 0
        self.last_position: Optional[float] = None
    
    def feed(self, line: str) -> bool:
        position = parse_timestamp(line)
        if position is None:
            return False
        self.markers_seen += 1
        self.last_position = position
        return True
