import logging
from pathlib import Path
from typing import Iterable, List, Optional

logger = logging.getLogger("stagequiz")

DEFAULT_WORDS: List[str] = [
    "cat", "sun", "tree", "book", "fish", "lamp", "river", "apple",
    "house", "cloud", "tiger", "plant", "garden", "planet", "rocket",
    "castle", "bridge", "pencil", "dolphin", "library", "rainbow",
    "teacher", "volcano", "elephant", "mountain", "umbrella", "dinosaur",
    "triangle", "butterfly", "adventure", "chocolate", "telescope",
]

def _iter_lines(path: Path) -> Iterable[str]:
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            s = line.strip()
            if not s or s.startswith("#"):
                continue
            yield s

def load_word_pool(path: Optional[str] = None) -> List[str]:
    """Read one word per line from ``path``, or return the built-in pool.

    Entries that are not purely alphabetic are skipped. A missing or empty
    file falls back to ``DEFAULT_WORDS``.
    """
    if not path:
        return list(DEFAULT_WORDS)
    p = Path(path)
    if not p.is_file():
        logger.warning({"event": "word_pool_missing", "path": path})
        return list(DEFAULT_WORDS)
    words: List[str] = []
    skipped = 0
    for raw in _iter_lines(p):
        if not raw.isalpha():
            skipped += 1
            continue
        words.append(raw)
    if not words:
        logger.warning({"event": "word_pool_empty", "path": path, "skipped": skipped})
        return list(DEFAULT_WORDS)
    logger.info({"event": "word_pool_loaded", "path": path, "count": len(words), "skipped": skipped})
    return words
