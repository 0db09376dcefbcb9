import hashlib

CODE_EXTENSIONS = (
    ".js",
    ".ts",
    ".jsx",
    ".tsx",
    ".py",
    ".java",
    ".go",
    ".rb",
    ".php",
    ".c",
    ".cpp",
    ".h",
    ".cs",
    ".rs",
    ".swift",
    ".kt",
)


def is_code_file(file_name: str) -> bool:
    return file_name.lower().endswith(CODE_EXTENSIONS)


def normalize_source(source_text: str) -> str:
    """Normalize line endings and trailing whitespace so cosmetic edits hash the same."""
    lines = source_text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return "\n".join(line.rstrip() for line in lines).strip("\n")


def content_fingerprint(source_text: str) -> str:
    return hashlib.sha256(normalize_source(source_text).encode("utf-8")).hexdigest()
