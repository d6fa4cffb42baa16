import random

def scramble(word: str) -> str:
    """Return a permutation of ``word`` that differs from it when possible.

    Words whose every ordering reads the same (length <= 1 or a single
    repeated character) come back unchanged.
    """
    if len(set(word)) < 2:
        return word
    letters = list(word)
    while True:
        random.shuffle(letters)
        scrambled = "".join(letters)
        if scrambled != word:
            return scrambled
