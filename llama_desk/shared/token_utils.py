import math


class TokenUtils:
    CHARS_PER_TOKEN = 4

    @staticmethod
    def estimate_token_count(text: str) -> int:
        """Estimate token count using the ~4 characters per token approximation."""
        return math.ceil(len(text) / TokenUtils.CHARS_PER_TOKEN)

