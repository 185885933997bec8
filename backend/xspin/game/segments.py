from dataclasses import dataclass
from typing import Sequence

COLORS = (
    "red",
    "orange",
    "yellow",
    "lime",
    "cyan",
    "blue",
    "purple",
    "magenta",
    "white",
    "pink",
    "green",
    "gold",
    "teal",
    "silver",
    "black",
)

COLOR_HEX = {
    "red": "#FF0000",
    "orange": "#FF8800",
    "yellow": "#FFFF00",
    "lime": "#00FF00",
    "cyan": "#00FFFF",
    "blue": "#0066FF",
    "purple": "#AA00FF",
    "magenta": "#FF00FF",
    "white": "#FFFFFF",
    "pink": "#FF0066",
    "green": "#00AA00",
    "gold": "#FFAA00",
    "teal": "#008080",
    "silver": "#C0C0C0",
    "black": "#111111",
}

DEFAULT_MULTIPLIER = 2
SLICES_PER_COLOR = 3


@dataclass(frozen=True)
class Segment:
    label: str
    color: str
    value: int
    multiplier: int = DEFAULT_MULTIPLIER


def palette(count: int) -> list[str]:
    if count > len(COLORS):
        raise ValueError(f"Only {len(COLORS)} distinct colors are available, asked for {count}")
    return list(COLORS[:count])


def color_wheel(
    colors: Sequence[str],
    *,
    slices_per_color: int = SLICES_PER_COLOR,
    multipliers: dict[str, int] | None = None,
) -> list[Segment]:
    """Blitz wheel: every color repeated ``slices_per_color`` times in palette order."""
    multipliers = multipliers or {}
    segments: list[Segment] = []
    for color in colors:
        for _ in range(slices_per_color):
            segments.append(
                Segment(
                    label=color[:3].upper(),
                    color=color,
                    value=len(segments),
                    multiplier=multipliers.get(color, DEFAULT_MULTIPLIER),
                )
            )
    return segments


def duel_wheel(seat_colors: Sequence[str], *, slices: int = 12) -> list[Segment]:
    """1v1 wheel: segments alternate ownership, ``value`` is the winning seat index."""
    if len(seat_colors) != 2:
        raise ValueError("A duel wheel needs exactly two seats")
    return [
        Segment(label=f"P{index % 2 + 1}", color=seat_colors[index % 2], value=index % 2)
        for index in range(slices)
    ]


def group_wheel(colors: Sequence[str]) -> list[Segment]:
    return [Segment(label=f"G{index + 1}", color=color, value=index) for index, color in enumerate(colors)]


def finalist_wheel(labels: Sequence[str], colors: Sequence[str]) -> list[Segment]:
    return [
        Segment(label=label[:2].upper(), color=color, value=index)
        for index, (label, color) in enumerate(zip(labels, colors))
    ]
