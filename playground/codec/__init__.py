from .compress import adecompress, compress, decompress, iter_compress

__all__ = ["compress", "decompress", "adecompress", "iter_compress"]
