import random
from typing import List
from ..config import settings
from ..models import Question

MULTIPLY_LEVEL = 3
DIVIDE_LEVEL = 6

def operand_range(level: int) -> tuple[int, int]:
    """Half-open ``[lower, upper)`` operand range for a difficulty level."""
    lower = 1 + level // 2
    upper = 5 + level * 3
    assert lower >= 1, "operands must stay positive"
    return lower, upper

def operators_for(level: int) -> List[str]:
    ops = ["+", "-"]
    if level >= MULTIPLY_LEVEL:
        ops.append("*")
    if level >= DIVIDE_LEVEL:
        ops.append("/")
    return ops

def generate_problem(stage: int, max_level: int | None = None) -> Question:
    if stage < 1:
        raise ValueError(f"stage must be >= 1, got {stage}")
    level = min(stage, max_level if max_level is not None else settings.max_level)
    lower, upper = operand_range(level)
    a = random.randrange(lower, upper)
    b = random.randrange(lower, upper)
    op = random.choice(operators_for(level))
    if op == "+":
        answer = a + b
    elif op == "-":
        answer = a - b
    elif op == "*":
        answer = a * b
    else:
        # dividend is a multiple of the divisor so the quotient is exact
        a = a * b
        answer = a // b
    return Question(prompt=f"{a} {op} {b} = ?", answer=str(answer))
