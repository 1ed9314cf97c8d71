"""File fingerprinting: MD5 hash plus PE/CLI metadata (architecture, assembly version).

Reads the DOS, COFF and optional headers, the section table and the CLI
(COR20) header through ctypes structures, then walks the metadata table
stream to the Assembly table for the version.

Anything that isn't a managed assembly (content files, native DLLs, corrupt
images) gets no architecture and no version. Only I/O errors while hashing
propagate.
"""

from __future__ import annotations

import ctypes
import hashlib
import logging
import struct
from dataclasses import dataclass
from typing import Any

from gamecheck.config import HASH_CHUNK_SIZE
from gamecheck.models import Architecture, FileFingerprint

logger = logging.getLogger(__name__)

# --- PE constants ---
IMAGE_DOS_SIGNATURE = 0x5A4D  # "MZ"
IMAGE_NT_SIGNATURE = 0x00004550  # "PE\0\0"
PE32_MAGIC = 0x10B
PE32PLUS_MAGIC = 0x20B
IMAGE_DIRECTORY_ENTRY_COM_DESCRIPTOR = 14

IMAGE_FILE_MACHINE_I386 = 0x014C
IMAGE_FILE_MACHINE_ARMNT = 0x01C4
IMAGE_FILE_MACHINE_IA64 = 0x0200
IMAGE_FILE_MACHINE_AMD64 = 0x8664
IMAGE_FILE_MACHINE_ARM64 = 0xAA64

# --- CLI constants ---
COMIMAGE_FLAGS_ILONLY = 0x00000001
COMIMAGE_FLAGS_32BITREQUIRED = 0x00000002
METADATA_SIGNATURE = 0x424A5342  # "BSJB"
HEAP_EXTRA_DATA = 0x40
ASSEMBLY_TABLE = 0x20

_PE32_MACHINES: dict[int, Architecture] = {
    IMAGE_FILE_MACHINE_I386: Architecture.X86,
    IMAGE_FILE_MACHINE_ARMNT: Architecture.ARM,
}

_PE32PLUS_MACHINES: dict[int, Architecture] = {
    IMAGE_FILE_MACHINE_AMD64: Architecture.AMD64,
    IMAGE_FILE_MACHINE_ARM64: Architecture.ARM64,
    IMAGE_FILE_MACHINE_IA64: Architecture.IA64,
}


# --- PE structures ---

class IMAGE_DOS_HEADER(ctypes.LittleEndianStructure):
    _fields_ = [
        ("e_magic", ctypes.c_uint16),
        ("e_unused", ctypes.c_uint8 * 58),
        ("e_lfanew", ctypes.c_uint32),  # offset of the PE signature
    ]


class IMAGE_FILE_HEADER(ctypes.LittleEndianStructure):
    _fields_ = [
        ("Machine", ctypes.c_uint16),
        ("NumberOfSections", ctypes.c_uint16),
        ("TimeDateStamp", ctypes.c_uint32),
        ("PointerToSymbolTable", ctypes.c_uint32),
        ("NumberOfSymbols", ctypes.c_uint32),
        ("SizeOfOptionalHeader", ctypes.c_uint16),
        ("Characteristics", ctypes.c_uint16),
    ]


class IMAGE_DATA_DIRECTORY(ctypes.LittleEndianStructure):
    _fields_ = [
        ("VirtualAddress", ctypes.c_uint32),
        ("Size", ctypes.c_uint32),
    ]


class IMAGE_SECTION_HEADER(ctypes.LittleEndianStructure):
    _fields_ = [
        ("Name", ctypes.c_uint8 * 8),
        ("VirtualSize", ctypes.c_uint32),
        ("VirtualAddress", ctypes.c_uint32),
        ("SizeOfRawData", ctypes.c_uint32),
        ("PointerToRawData", ctypes.c_uint32),
        ("PointerToRelocations", ctypes.c_uint32),
        ("PointerToLinenumbers", ctypes.c_uint32),
        ("NumberOfRelocations", ctypes.c_uint16),
        ("NumberOfLinenumbers", ctypes.c_uint16),
        ("Characteristics", ctypes.c_uint32),
    ]


class IMAGE_COR20_HEADER(ctypes.LittleEndianStructure):
    _fields_ = [
        ("cb", ctypes.c_uint32),
        ("MajorRuntimeVersion", ctypes.c_uint16),
        ("MinorRuntimeVersion", ctypes.c_uint16),
        ("MetaData", IMAGE_DATA_DIRECTORY),
        ("Flags", ctypes.c_uint32),
        ("EntryPointToken", ctypes.c_uint32),
        ("Resources", IMAGE_DATA_DIRECTORY),
        ("StrongNameSignature", IMAGE_DATA_DIRECTORY),
        ("CodeManagerTable", IMAGE_DATA_DIRECTORY),
        ("VTableFixups", IMAGE_DATA_DIRECTORY),
        ("ExportAddressTableJumps", IMAGE_DATA_DIRECTORY),
        ("ManagedNativeHeader", IMAGE_DATA_DIRECTORY),
    ]


# --- Metadata table schemas (ECMA-335 II.22), tables 0x00-0x1F ---
# Column kinds: int = fixed width, "s"/"g"/"b" = heap index,
# ("t", table) = simple index, ("c", name) = coded index.

_CODED_INDEXES: dict[str, tuple[int, tuple[int, ...]]] = {
    "TypeDefOrRef": (2, (0x02, 0x01, 0x1B)),
    "HasConstant": (2, (0x04, 0x08, 0x17)),
    "HasCustomAttribute": (5, (
        0x06, 0x04, 0x01, 0x02, 0x08, 0x09, 0x0A, 0x00, 0x0E, 0x17, 0x14,
        0x11, 0x1A, 0x1B, 0x20, 0x23, 0x26, 0x27, 0x28, 0x2A, 0x2C, 0x2B,
    )),
    "HasFieldMarshal": (1, (0x04, 0x08)),
    "HasDeclSecurity": (2, (0x02, 0x06, 0x20)),
    "MemberRefParent": (3, (0x02, 0x01, 0x1A, 0x06, 0x1B)),
    "HasSemantics": (1, (0x14, 0x17)),
    "MethodDefOrRef": (1, (0x06, 0x0A)),
    "MemberForwarded": (1, (0x04, 0x06)),
    "ResolutionScope": (2, (0x00, 0x1A, 0x23, 0x01)),
    "CustomAttributeType": (3, (0x06, 0x0A)),
}

_TABLE_SCHEMAS: tuple[tuple[Any, ...], ...] = (
    (2, "s", "g", "g", "g"),                                     # 0x00 Module
    (("c", "ResolutionScope"), "s", "s"),                         # 0x01 TypeRef
    (4, "s", "s", ("c", "TypeDefOrRef"), ("t", 0x04), ("t", 0x06)),  # 0x02 TypeDef
    (("t", 0x04),),                                               # 0x03 FieldPtr
    (2, "s", "b"),                                                # 0x04 Field
    (("t", 0x06),),                                               # 0x05 MethodPtr
    (4, 2, 2, "s", "b", ("t", 0x08)),                             # 0x06 MethodDef
    (("t", 0x08),),                                               # 0x07 ParamPtr
    (2, 2, "s"),                                                  # 0x08 Param
    (("t", 0x02), ("c", "TypeDefOrRef")),                         # 0x09 InterfaceImpl
    (("c", "MemberRefParent"), "s", "b"),                         # 0x0A MemberRef
    (2, ("c", "HasConstant"), "b"),                               # 0x0B Constant
    (("c", "HasCustomAttribute"), ("c", "CustomAttributeType"), "b"),  # 0x0C CustomAttribute
    (("c", "HasFieldMarshal"), "b"),                              # 0x0D FieldMarshal
    (2, ("c", "HasDeclSecurity"), "b"),                           # 0x0E DeclSecurity
    (2, 4, ("t", 0x02)),                                          # 0x0F ClassLayout
    (4, ("t", 0x04)),                                             # 0x10 FieldLayout
    ("b",),                                                       # 0x11 StandAloneSig
    (("t", 0x02), ("t", 0x14)),                                   # 0x12 EventMap
    (("t", 0x14),),                                               # 0x13 EventPtr
    (2, "s", ("c", "TypeDefOrRef")),                              # 0x14 Event
    (("t", 0x02), ("t", 0x17)),                                   # 0x15 PropertyMap
    (("t", 0x17),),                                               # 0x16 PropertyPtr
    (2, "s", "b"),                                                # 0x17 Property
    (2, ("t", 0x06), ("c", "HasSemantics")),                      # 0x18 MethodSemantics
    (("t", 0x02), ("c", "MethodDefOrRef"), ("c", "MethodDefOrRef")),  # 0x19 MethodImpl
    ("s",),                                                       # 0x1A ModuleRef
    ("b",),                                                       # 0x1B TypeSpec
    (2, ("c", "MemberForwarded"), "s", ("t", 0x1A)),              # 0x1C ImplMap
    (4, ("t", 0x04)),                                             # 0x1D FieldRVA
    (4, 4),                                                       # 0x1E EncLog
    (4,),                                                         # 0x1F EncMap
)


class BadImageError(ValueError):
    """The file has a PE signature but its headers don't make sense."""


@dataclass(frozen=True)
class PeInfo:
    machine: int
    is_pe32plus: bool
    cor_flags: int
    architecture: Architecture
    version: str | None


def compute_hash(path: str) -> str:
    """Lowercase hex MD5 of the file contents.

    Raises OSError if the file can't be read.
    """
    h = hashlib.md5(usedforsecurity=False)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def read_pe_info(path: str) -> PeInfo | None:
    """Return CLI metadata for a managed assembly, or None for anything else."""
    try:
        with open(path, "rb") as f:
            if f.read(2) != b"MZ":
                return None
            data = b"MZ" + f.read()
    except OSError as e:
        logger.debug("Can't read %s for PE metadata: %s", path, e)
        return None

    try:
        return parse_pe(data)
    except (BadImageError, struct.error) as e:
        logger.debug("Not a readable assembly: %s (%s)", path, e)
        return None


def parse_pe(data: bytes) -> PeInfo | None:
    """Parse an in-memory PE image.

    Returns None for PE images without a CLI header (native binaries).
    Raises BadImageError or struct.error for truncated/corrupt images.
    """
    dos = _struct_at(data, IMAGE_DOS_HEADER, 0)
    if dos.e_magic != IMAGE_DOS_SIGNATURE:
        raise BadImageError("missing MZ signature")

    nt_offset = dos.e_lfanew
    (signature,) = struct.unpack_from("<I", data, nt_offset)
    if signature != IMAGE_NT_SIGNATURE:
        raise BadImageError("missing PE signature")

    file_header = _struct_at(data, IMAGE_FILE_HEADER, nt_offset + 4)
    opt_offset = nt_offset + 4 + ctypes.sizeof(IMAGE_FILE_HEADER)
    (magic,) = struct.unpack_from("<H", data, opt_offset)
    if magic == PE32_MAGIC:
        count_offset, dirs_offset = opt_offset + 92, opt_offset + 96
    elif magic == PE32PLUS_MAGIC:
        count_offset, dirs_offset = opt_offset + 108, opt_offset + 112
    else:
        raise BadImageError(f"unknown optional header magic 0x{magic:X}")

    (dir_count,) = struct.unpack_from("<I", data, count_offset)
    if dir_count <= IMAGE_DIRECTORY_ENTRY_COM_DESCRIPTOR:
        return None
    cli_dir = _struct_at(
        data, IMAGE_DATA_DIRECTORY,
        dirs_offset + IMAGE_DIRECTORY_ENTRY_COM_DESCRIPTOR * ctypes.sizeof(IMAGE_DATA_DIRECTORY),
    )
    if cli_dir.VirtualAddress == 0:
        return None

    sections = _read_sections(data, opt_offset + file_header.SizeOfOptionalHeader, file_header.NumberOfSections)
    cor = _struct_at(data, IMAGE_COR20_HEADER, _rva_to_offset(sections, cli_dir.VirtualAddress))

    is_pe32plus = magic == PE32PLUS_MAGIC
    architecture = _architecture(file_header.Machine, is_pe32plus, cor.Flags)

    # Version failures only lose the version; the header info is still good.
    version: str | None
    try:
        version = _read_assembly_version(data, _rva_to_offset(sections, cor.MetaData.VirtualAddress))
    except (BadImageError, struct.error, ValueError) as e:
        logger.debug("Can't read assembly metadata: %s", e)
        version = None

    return PeInfo(
        machine=file_header.Machine,
        is_pe32plus=is_pe32plus,
        cor_flags=cor.Flags,
        architecture=architecture,
        version=version,
    )


def inspect_file(path: str) -> FileFingerprint:
    """Default FileInspector: hash every file, add metadata for assemblies."""
    file_hash = compute_hash(path)
    info = read_pe_info(path)
    if info is None:
        return FileFingerprint(hash=file_hash)
    return FileFingerprint(hash=file_hash, architecture=info.architecture, version=info.version)


# --- Internal helpers ---


def _struct_at(data: bytes, cls: Any, offset: int) -> Any:
    if offset < 0 or offset + ctypes.sizeof(cls) > len(data):
        raise BadImageError(f"{cls.__name__} out of range at 0x{offset:X}")
    return cls.from_buffer_copy(data, offset)


def _read_sections(data: bytes, offset: int, count: int) -> list[IMAGE_SECTION_HEADER]:
    size = ctypes.sizeof(IMAGE_SECTION_HEADER)
    return [_struct_at(data, IMAGE_SECTION_HEADER, offset + i * size) for i in range(count)]


def _rva_to_offset(sections: list[IMAGE_SECTION_HEADER], rva: int) -> int:
    for s in sections:
        span = max(s.VirtualSize, s.SizeOfRawData)
        if s.VirtualAddress <= rva < s.VirtualAddress + span:
            return rva - s.VirtualAddress + s.PointerToRawData
    raise BadImageError(f"RVA 0x{rva:X} is not in any section")


def _architecture(machine: int, is_pe32plus: bool, cor_flags: int) -> Architecture:
    if is_pe32plus:
        return _PE32PLUS_MACHINES.get(machine, Architecture.NONE)
    if cor_flags & COMIMAGE_FLAGS_ILONLY and not cor_flags & COMIMAGE_FLAGS_32BITREQUIRED:
        return Architecture.MSIL
    return _PE32_MACHINES.get(machine, Architecture.NONE)


def _read_assembly_version(data: bytes, md_offset: int) -> str | None:
    """Read the 4-part version from the Assembly table, or None if there's no row."""
    signature, _major, _minor, _reserved, length = struct.unpack_from("<IHHII", data, md_offset)
    if signature != METADATA_SIGNATURE:
        raise BadImageError("missing metadata signature")

    pos = md_offset + 16 + length
    _flags, stream_count = struct.unpack_from("<HH", data, pos)
    pos += 4

    tables_offset = None
    for _ in range(stream_count):
        offset, _size = struct.unpack_from("<II", data, pos)
        pos += 8
        end = data.index(b"\0", pos)
        name = data[pos:end]
        pos += (end - pos + 1 + 3) & ~3  # name + NUL, padded to 4 bytes
        if name in (b"#~", b"#-"):
            tables_offset = md_offset + offset
    if tables_offset is None:
        raise BadImageError("no metadata table stream")

    heap_sizes, valid = struct.unpack_from("<6xB1xQ", data, tables_offset)
    pos = tables_offset + 24
    rows = [0] * 64
    for table in range(64):
        if valid >> table & 1:
            (rows[table],) = struct.unpack_from("<I", data, pos)
            pos += 4
    if heap_sizes & HEAP_EXTRA_DATA:
        pos += 4

    if rows[ASSEMBLY_TABLE] == 0:
        return None

    for table in range(ASSEMBLY_TABLE):
        if rows[table]:
            pos += rows[table] * _row_size(_TABLE_SCHEMAS[table], heap_sizes, rows)

    # Assembly row: HashAlgId (4), MajorVersion, MinorVersion, BuildNumber, RevisionNumber (2 each)
    _hash_alg, major, minor, build, revision = struct.unpack_from("<IHHHH", data, pos)
    return f"{major}.{minor}.{build}.{revision}"


def _row_size(schema: tuple[Any, ...], heap_sizes: int, rows: list[int]) -> int:
    size = 0
    for col in schema:
        if isinstance(col, int):
            size += col
        elif col == "s":
            size += 4 if heap_sizes & 0x01 else 2
        elif col == "g":
            size += 4 if heap_sizes & 0x02 else 2
        elif col == "b":
            size += 4 if heap_sizes & 0x04 else 2
        elif col[0] == "t":
            size += 4 if rows[col[1]] >= 1 << 16 else 2
        else:
            bits, tables = _CODED_INDEXES[col[1]]
            largest = max(rows[t] for t in tables)
            size += 4 if largest >= 1 << (16 - bits) else 2
    return size
