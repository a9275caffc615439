from config import settings


def split_text_into_chunks(
    text: str, max_chunk_size: int = settings.MAX_CHUNK_SIZE
) -> list[str]:
    """Split text into consecutive slices of at most ``max_chunk_size`` chars.

    Splitting is purely positional: no paragraph or sentence awareness, no
    overlap, and ``"".join(chunks) == text``. An empty string yields no
    chunks.
    """
    if max_chunk_size <= 0:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
    return [
        text[start : start + max_chunk_size]
        for start in range(0, len(text), max_chunk_size)
    ]
