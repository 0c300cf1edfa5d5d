# Archive file extensions
BLOB_EXT = ".bin"
DESCRIPTOR_EXT = ".psb"
COMPRESSED_SUFFIX = ".m"

# Archive signature carried in the descriptor tree
ARCHIVE_OBJECT_TYPE = "archive"
ARCHIVE_VERSION = 1.0

# Descriptor tree keys
KEY_OBJECT_TYPE = "id"
KEY_VERSION = "version"
KEY_FILE_TABLE = "file_info"

# Entry start offsets in the blob are multiples of this
ALIGNMENT = 2048

# Descriptor tree container
TREE_MAGIC = b"PSB\x00"
TREE_VERSION_MIN = 1
TREE_VERSION_MAX = 3
TREE_WRITE_VERSION = 3
TREE_FLAG_FILTERED = 1 << 0

# Compressed descriptor container (.m)
MDF_MAGIC = b"mdf\x00"
MDF_DEFAULT_LEVEL = 9

U64_MAX = (1 << 64) - 1

COPY_BUFFER_SIZE = 1_048_576  # 1 MiB
