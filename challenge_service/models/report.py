"""
POSTURE MUSE Challenge Service - Challenge Report

Renders the closing challenge report as a PNG: header, total-score badge,
and one row per level with its thumbnail, difficulty, score and feedback.
A thumbnail that cannot be fetched or decoded is drawn as a grey placeholder;
it never stops the rest of the report.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import aiohttp
import cv2
import numpy as np

from core.config import settings
from shared.utils import get_now, log_execution_time

from .pose_library import PoseLibrary
from .summary import ChallengeSummary

logger = logging.getLogger(__name__)


# Layout (pixels)
REPORT_WIDTH = 1400
PADDING = 48
THUMB_SIZE = 120
GAP = 20
HEADER_HEIGHT = 160
ROW_HEIGHT = max(THUMB_SIZE + 20, 120)
MAX_TIPS = 4
MAX_TIP_CHARS = 80

# Colors (BGR)
WHITE = (255, 255, 255)
INK = (42, 23, 15)
SUBTLE = (81, 65, 55)
MUTED = (105, 85, 71)
FOOTER = (128, 114, 107)
TEAL = (59, 78, 6)
PLACEHOLDER = (246, 244, 243)

FONT = cv2.FONT_HERSHEY_SIMPLEX
FONT_BOLD = cv2.FONT_HERSHEY_DUPLEX


def _ascii(text: str) -> str:
    """Hershey fonts only cover ASCII."""
    return text.replace("°", " deg").encode("ascii", "ignore").decode("ascii").strip()


def _truncate(text: str, limit: int = MAX_TIP_CHARS) -> str:
    return text if len(text) <= limit else text[:limit - 3] + "..."


# ═══════════════════════════════════════════════════════════════════════════════
# THUMBNAILS
# ═══════════════════════════════════════════════════════════════════════════════

async def _read_thumbnail_bytes(source: str, session: aiohttp.ClientSession) -> bytes:
    if source.startswith(("http://", "https://")):
        async with session.get(source) as response:
            if response.status != 200:
                raise aiohttp.ClientResponseError(
                    response.request_info, response.history,
                    status=response.status, message="Thumbnail fetch failed"
                )
            return await response.read()
    return await asyncio.to_thread(Path(source).read_bytes)


async def fetch_thumbnail(source: Optional[str], session: aiohttp.ClientSession) -> Optional[np.ndarray]:
    """
    Load one thumbnail as a BGR image.

    Returns None (placeholder) when there is no source or anything fails.
    """
    if not source:
        return None

    try:
        data = await _read_thumbnail_bytes(source, session)
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
        logger.warning(f"⚠️ Could not load thumbnail {source}: {e}")
        return None

    if not data:
        logger.warning(f"⚠️ Thumbnail {source} is empty")
        return None

    image = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)
    if image is None:
        logger.warning(f"⚠️ Thumbnail {source} is not a decodable image")
    return image


async def fetch_thumbnails(sources: List[Optional[str]]) -> List[Optional[np.ndarray]]:
    """Fetch every level thumbnail concurrently; failures come back as None."""
    timeout = aiohttp.ClientTimeout(total=settings.THUMBNAIL_FETCH_TIMEOUT)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        return list(await asyncio.gather(*(fetch_thumbnail(s, session) for s in sources)))


# ═══════════════════════════════════════════════════════════════════════════════
# DRAWING
# ═══════════════════════════════════════════════════════════════════════════════

def _text(canvas: np.ndarray, text: str, x: int, y: int, scale: float, color, bold: bool = False):
    cv2.putText(
        canvas, _ascii(text), (x, y),
        FONT_BOLD if bold else FONT, scale, color,
        2 if bold else 1, cv2.LINE_AA
    )


def _draw_thumbnail(canvas: np.ndarray, image: Optional[np.ndarray], x: int, y: int):
    if image is None:
        cv2.rectangle(canvas, (x, y), (x + THUMB_SIZE, y + THUMB_SIZE), PLACEHOLDER, thickness=-1)
        return
    canvas[y:y + THUMB_SIZE, x:x + THUMB_SIZE] = cv2.resize(
        image, (THUMB_SIZE, THUMB_SIZE), interpolation=cv2.INTER_AREA
    )


def draw_report(
    summary: ChallengeSummary,
    thumbnails: Optional[List[Optional[np.ndarray]]] = None
) -> np.ndarray:
    """Draw the report onto a BGR canvas."""
    rows = summary.levels
    thumbnails = thumbnails or [None] * len(rows)
    height = PADDING * 2 + HEADER_HEIGHT + len(rows) * ROW_HEIGHT
    canvas = np.full((height, REPORT_WIDTH, 3), WHITE, dtype=np.uint8)
    generated = get_now().strftime("%Y-%m-%d %H:%M UTC")

    # Header
    _text(canvas, "Posture Muse - Challenge Report", PADDING, PADDING + 12, 1.1, INK, bold=True)
    _text(canvas, f"Generated: {generated}", PADDING, PADDING + 44, 0.55, SUBTLE)
    _text(canvas, f"{summary.feedback.label} - {summary.feedback.grade}", PADDING, PADDING + 80, 0.7, TEAL)

    # Total score badge
    badge_x = REPORT_WIDTH - PADDING - 260
    badge_y = PADDING
    cv2.rectangle(canvas, (badge_x, badge_y), (badge_x + 260, badge_y + 120), TEAL, thickness=-1)
    _text(canvas, str(summary.total_score), badge_x + 26, badge_y + 72, 2.0, WHITE, bold=True)
    _text(canvas, "Total Score", badge_x + 26, badge_y + 102, 0.55, WHITE)

    # Level rows
    y = PADDING + HEADER_HEIGHT
    text_x = PADDING + THUMB_SIZE + GAP
    score_x = REPORT_WIDTH - PADDING - 120
    for idx, row in enumerate(rows):
        image = thumbnails[idx] if idx < len(thumbnails) else None
        _draw_thumbnail(canvas, image, PADDING, y - 16)

        _text(canvas, f"{row.level}. {row.name}", text_x, y + 10, 0.65, INK, bold=True)
        _text(canvas, f"Difficulty: {row.difficulty}", text_x, y + 36, 0.5, MUTED)

        if row.skipped:
            cv2.line(canvas, (score_x, y + 18), (score_x + 36, y + 18), TEAL, 3, cv2.LINE_AA)
        else:
            _text(canvas, f"{row.score}/100", score_x, y + 26, 0.8, TEAL, bold=True)

        tip_y = y + 56
        for tip in row.feedback[:MAX_TIPS]:
            _text(canvas, f"* {_truncate(tip)}", text_x, tip_y, 0.45, SUBTLE)
            tip_y += 20

        y += ROW_HEIGHT

    # Footer
    _text(canvas, f"Generated: {generated}", PADDING, height - 20, 0.4, FOOTER)

    return canvas


@log_execution_time
async def render_report(summary: ChallengeSummary, library: Optional[PoseLibrary] = None) -> bytes:
    """
    Render the challenge report as PNG bytes.

    Args:
        summary: Closing summary of the challenge
        library: Pose library used to look up level thumbnails
    """
    sources: List[Optional[str]] = []
    for row in summary.levels:
        pose = library.get(row.slug) if library else None
        sources.append(pose.thumbnail if pose and pose.thumbnail else None)

    thumbnails = await fetch_thumbnails(sources)
    canvas = draw_report(summary, thumbnails)

    ok, encoded = cv2.imencode(".png", canvas)
    if not ok:
        raise RuntimeError("Could not encode challenge report")
    return encoded.tobytes()
