from typing import Sequence

from llama_desk.entities.message import Message


def trim_to_budget(messages: Sequence[Message], max_tokens: int) -> list[Message]:
    """
    Select the longest contiguous suffix of a history that fits a token budget.

    Walks backwards from the newest message and stops at the first message
    that would overflow, so an older message is never kept while a newer
    one is dropped. An empty window is a valid result.
    """
    start = len(messages)
    total = 0
    for index in range(len(messages) - 1, -1, -1):
        cost = messages[index].approx_token_count
        if total + cost > max_tokens:
            break
        total += cost
        start = index
    return list(messages[start:])
