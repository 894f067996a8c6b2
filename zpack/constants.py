# Sector alignment for every entry region in the data blob
SECTOR_SIZE = 0x800  # 2048

# Header table geometry
FILE_ENTRY_COUNT = 8192
DESCRIPTOR_SIZE = 40
NAME_SIZE = 18
HEADER_SIZE = FILE_ENTRY_COUNT * DESCRIPTOR_SIZE

# Presence flag values (signed 32-bit)
PRESENCE_TERMINATOR = 0
PRESENCE_NORMAL = -1

# Tag written when the caller does not supply one
DEFAULT_TAG = -1

TAG_MIN = -0x8000
TAG_MAX = 0x7FFF
INT32_MAX = 0x7FFFFFFF

# Codec defaults (zlib levels 0..9, -1 = library default)
DEFAULT_LEVEL = 6
STREAM_BUFFER_SIZE = 64 * 1024

# Conventional file names of the header table and the data blob
DEFAULT_HEADER_NAME = "FAT_Z.BIN"
DEFAULT_DATA_NAME = "BG3ZPACK.ARC"

# Unpack manifest, written next to the extracted files
MANIFEST_NAME = "_zpack.json"
MANIFEST_FORMAT = "zpack-manifest"
MANIFEST_VERSION = 1

# Single-blob FOZ header: name[16] + 4 x int32
FOZ_NAME_SIZE = 16
FOZ_HEADER_SIZE = 32
FOZ_DEFAULT_VALUES = (1, 0, 0, 0)
