"""Word motions and text objects over flat field text.

All helpers take the whole buffer text (lines joined by ``"\\n"``) and a
flat offset, so a motion can run across line ends the same way it runs
within a line.
"""

from __future__ import annotations

BLANK = 0
WORD = 1
PUNCT = 2
NEWLINE = 3


def char_class(ch: str) -> int:
    """Class of *ch* for word motions: blank, word char or punctuation."""
    if ch.isspace():
        return BLANK
    if ch.isalnum() or ch == "_":
        return WORD
    return PUNCT


def _run_class(ch: str) -> int:
    # Text objects never cross a line break.
    if ch == "\n":
        return NEWLINE
    return char_class(ch)


def line_start(text: str, i: int) -> int:
    return text.rfind("\n", 0, i) + 1


def line_end(text: str, i: int) -> int:
    end = text.find("\n", i)
    return len(text) if end == -1 else end


def first_non_blank(text: str, i: int) -> int:
    start = line_start(text, i)
    end = line_end(text, i)
    col = start
    while col < end and text[col] in " \t":
        col += 1
    return col


def word_forward(text: str, i: int) -> int:
    """Start of the next non-blank run after *i* (``len(text)`` if none)."""
    n = len(text)
    if i >= n:
        return n
    cls = char_class(text[i])
    j = i
    if cls != BLANK:
        while j < n and char_class(text[j]) == cls:
            j += 1
    while j < n and text[j].isspace():
        j += 1
    return j


def word_end(text: str, i: int) -> int:
    """Last character of the current or next non-blank run."""
    n = len(text)
    if n == 0:
        return 0
    j = i + 1
    while j < n and text[j].isspace():
        j += 1
    if j >= n:
        return n - 1
    cls = char_class(text[j])
    while j + 1 < n and char_class(text[j + 1]) == cls:
        j += 1
    return j


def word_backward(text: str, i: int) -> int:
    """Start of the previous non-blank run before *i*."""
    j = min(i, len(text)) - 1
    while j > 0 and text[j].isspace():
        j -= 1
    if j <= 0:
        return 0
    cls = char_class(text[j])
    while j > 0 and char_class(text[j - 1]) == cls:
        j -= 1
    return j


def inner_word(text: str, i: int) -> tuple[int, int]:
    """Half-open range of the run under *i* (empty on a line end)."""
    n = len(text)
    if i >= n or text[i] == "\n":
        return (i, i)
    cls = _run_class(text[i])
    start = i
    while start > 0 and _run_class(text[start - 1]) == cls:
        start -= 1
    end = i + 1
    while end < n and _run_class(text[end]) == cls:
        end += 1
    return (start, end)


def a_word(text: str, i: int) -> tuple[int, int]:
    """Like :func:`inner_word` plus surrounding blanks.

    On a word, trailing blanks are taken (leading ones when there are no
    trailing); on blanks, the following word is taken.
    """
    start, end = inner_word(text, i)
    if start == end:
        return (start, end)
    n = len(text)
    if _run_class(text[i]) == BLANK:
        if end < n and _run_class(text[end]) in (WORD, PUNCT):
            cls = _run_class(text[end])
            while end < n and _run_class(text[end]) == cls:
                end += 1
        return (start, end)
    tail = end
    while tail < n and text[tail] in " \t":
        tail += 1
    if tail > end:
        return (start, tail)
    while start > 0 and text[start - 1] in " \t":
        start -= 1
    return (start, end)


def quoted(text: str, i: int, quote: str, around: bool) -> tuple[int, int] | None:
    """Range of the quoted string on the cursor's line, or ``None``."""
    start = line_start(text, i)
    end = line_end(text, i)
    marks = [p for p in range(start, end) if text[p] == quote and (p == start or text[p - 1] != "\\")]
    pairs = list(zip(marks[::2], marks[1::2]))
    chosen = None
    for open_q, close_q in pairs:
        if open_q <= i <= close_q:
            chosen = (open_q, close_q)
            break
    if chosen is None:
        chosen = next(((o, c) for o, c in pairs if o > i), None)
    if chosen is None:
        return None
    open_q, close_q = chosen
    if around:
        return (open_q, close_q + 1)
    return (open_q + 1, close_q)
