"""
Fixed-width line helpers for character displays.
"""

LINE_WIDTH = 16


def space_between(width: int, left: str, right: str) -> str:
    """
    ``left`` flush left, ``right`` flush right, padded to ``width``.

    When both do not fit, ``left`` is shortened so ``right`` stays visible.
    """
    if not right:
        return left[:width]
    room = width - len(right)
    if room <= 0:
        return right[:width]
    if len(left) >= room:
        left = left[:max(room - 1, 0)]
    return left + " " * (width - len(left) - len(right)) + right


def fill_around(width: int, fill: str, text: str) -> str:
    """Centre ``text`` in a run of ``fill`` characters"""
    if len(text) >= width:
        return text[:width]
    pad = width - len(text)
    left = pad // 2
    return fill * left + text + fill * (pad - left)


def centre(width: int, text: str) -> str:
    return fill_around(width, " ", text)
