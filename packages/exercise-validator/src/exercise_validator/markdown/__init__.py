from .extract import SKIP_MARKERS, CodeBlock, ExtractResult, executable_blocks, extract_blocks, scan_blocks

__all__ = ["SKIP_MARKERS", "CodeBlock", "ExtractResult", "executable_blocks", "extract_blocks", "scan_blocks"]
