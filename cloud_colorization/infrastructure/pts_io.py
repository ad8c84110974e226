"""Whitespace-delimited text clouds (``x y z [dummy...] [r g b]``, one point per line).

Column layout is inferred from the first record and then applied to the whole
source. Malformed or short records are skipped; loading never aborts on them.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, Dict, List, Optional, Tuple

from common.text import format_compact_float, parse_channel, parse_finite_float
from exceptions.exceptions import StepPreconditionError

from cloud_colorization.domain.model import ColorizedCloud, PointCloud

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnLayout:
    """Per-source column layout inferred from the first record."""

    columns: int
    has_color: bool
    dummy_count: int

    @classmethod
    def infer(cls, token_count: int) -> "ColumnLayout":
        if token_count < 3:
            raise ValueError(f"a record needs at least 3 columns, got {token_count}")
        has_color = token_count >= 6
        return cls(
            columns=token_count,
            has_color=has_color,
            dummy_count=token_count - (6 if has_color else 3),
        )

    def parse(self, tokens: List[str]) -> Optional[Tuple[float, float, float, Optional[Tuple[int, int, int]]]]:
        """Return (x, y, z, rgb) or None when the record is malformed."""
        if len(tokens) < self.columns:
            return None
        xyz = [parse_finite_float(t) for t in tokens[:3]]
        if None in xyz:
            return None
        color_at = 3 + self.dummy_count
        # dummy columns (remission, intensity, ...) must be numeric but are dropped
        if any(parse_finite_float(t) is None for t in tokens[3:color_at]):
            return None
        rgb = None
        if self.has_color:
            channels = [parse_channel(t) for t in tokens[color_at : color_at + 3]]
            if None in channels:
                return None
            rgb = (channels[0], channels[1], channels[2])
        return xyz[0], xyz[1], xyz[2], rgb


@dataclass(frozen=True)
class LoadStats:
    path: Path
    layout: Optional[ColumnLayout]
    loaded: int
    skipped: int


def _open_source(path: Path) -> IO[str]:
    try:
        return open(path, "r", encoding="utf-8", errors="replace")
    except OSError as e:
        raise StepPreconditionError(
            "SOURCE_NOT_READABLE",
            f"Could not open »{path}«: {e.strerror or e}",
            context="read_pts",
        ) from e


def read_pts(path: Path, cloud: PointCloud) -> LoadStats:
    """Append every valid record of a text cloud to ``cloud``.

    Lines with fewer than 3 tokens ahead of the first record (e.g. a point
    count header) are skipped before the layout is inferred. A colored
    destination requires a source with color columns; an uncolored
    destination drops any color columns the source carries.
    """
    path = Path(path)
    layout: Optional[ColumnLayout] = None
    loaded = 0
    skipped = 0

    with _open_source(path) as f:
        for lineno, line in enumerate(f, start=1):
            tokens = line.split()
            if not tokens:
                continue
            if layout is None:
                if len(tokens) < 3:
                    logger.debug("%s:%d: skipping header line", path, lineno)
                    continue
                layout = ColumnLayout.infer(len(tokens))
                logger.debug(
                    "%s: %d columns, color=%s, dummy columns=%d",
                    path, layout.columns, layout.has_color, layout.dummy_count,
                )
                if cloud.has_color and not layout.has_color:
                    raise StepPreconditionError(
                        "SOURCE_WITHOUT_COLOR",
                        f"»{path}« has {layout.columns} columns and carries no color",
                        context="read_pts",
                    )

            record = layout.parse(tokens)
            if record is None:
                skipped += 1
                logger.debug("%s:%d: skipping malformed record", path, lineno)
                continue
            x, y, z, rgb = record
            cloud.append(x, y, z, rgb if cloud.has_color else None)
            loaded += 1
            if loaded % cloud.growth_chunk == 0:
                logger.info("%d values read.", loaded)

    if skipped:
        logger.warning("%s: skipped %d malformed record(s)", path, skipped)
    return LoadStats(path=path, layout=layout, loaded=loaded, skipped=skipped)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _compact_line(x, y, z, sq, flag, r, g, b) -> str:
    f = format_compact_float
    return f"{f(x)} {f(y)} {f(z)} {f(sq)} {flag} {r} {g} {b}\n"


def _fixed_line(x, y, z, sq, flag, r, g, b) -> str:
    return "% 11f % 11f % 11f % 14f %d % 3d % 3d % 3d\n" % (x, y, z, sq, flag, r, g, b)


LINE_FORMATTERS: Dict[str, Callable[..., str]] = {
    "compact": _compact_line,
    "fixed": _fixed_line,
}


def format_result_lines(result: ColorizedCloud, float_format: str = "compact"):
    """Yield one ``x y z sqdist flag r g b`` line per target point, in order."""
    try:
        line = LINE_FORMATTERS[float_format]
    except KeyError:
        raise ValueError(f"unknown float format: {float_format!r}") from None
    points = result.points.tolist()
    sq = result.sq_distances.tolist()
    flags = result.matched.tolist()
    colors = result.colors.tolist()
    for (x, y, z), d, m, (r, g, b) in zip(points, sq, flags, colors):
        yield line(x, y, z, d, 1 if m else 0, r, g, b)


def write_pts_result(result: ColorizedCloud, path: Path, float_format: str = "compact") -> None:
    """Write the result next to ``path`` and move it into place once complete."""
    if float_format not in LINE_FORMATTERS:
        raise ValueError(f"unknown float format: {float_format!r}")
    path = Path(path)
    tmp = path.with_name(path.name + ".part")
    try:
        out = open(tmp, "w", encoding="utf-8")
    except OSError as e:
        raise StepPreconditionError(
            "OUTPUT_NOT_WRITABLE",
            f"Could not open »{path}«: {e.strerror or e}",
            context="write_pts_result",
        ) from e
    try:
        with out:
            out.writelines(format_result_lines(result, float_format))
        os.replace(tmp, path)
    except OSError as e:
        _discard(tmp)
        raise StepPreconditionError(
            "OUTPUT_NOT_WRITABLE",
            f"Could not write »{path}«: {e.strerror or e}",
            context="write_pts_result",
        ) from e
    except BaseException:
        _discard(tmp)
        raise


def _discard(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
