"""
Split a file into ordered, non-overlapping parts.
"""

from cloudfile.models.upload_model import ChunkInfo


def plan_chunks(file_size: int, chunk_size: int) -> list[ChunkInfo]:
    """
    Compute the chunk list for a file.

    Args:
        file_size: Size of the source file in bytes
        chunk_size: Target size of every part except the last

    Returns:
        Parts numbered from 1 whose byte ranges cover the file exactly.
        Empty when ``file_size`` is 0.
    """
    if file_size < 0:
        raise ValueError(f"file_size must be >= 0, got {file_size}")
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be > 0, got {chunk_size}")

    chunk_count = -(-file_size // chunk_size)
    chunks = []
    for index in range(chunk_count):
        start = index * chunk_size
        end = min(start + chunk_size - 1, file_size - 1)
        chunks.append(ChunkInfo(part_number=index + 1, start=start, end=end))

    return chunks
