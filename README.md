# xexkit

A pure-Python library for working with Xbox 360 executables and related data.

## What it does

- **Executable loading** (`xexkit.loader`, `xexkit.xex`, `xexkit.image`):
  `parse_image` and `load_image_file` recognise XEX2 and big-endian ELF data and
  return an `Image` with its sections and symbols. For XEX2, `load_xex_image`
  decrypts retail-encrypted images, undoes basic compression, maps the embedded
  PE sections and replaces import thunks with a return stub. Pass `exports`
  (library name -> ordinal -> symbol name) to get imported functions added to
  `Image.symbols`; `parse_image` passes none.
- **Delta patches** (`xexkit.patcher`, `xexkit.lzx`): `apply_patch` and
  `apply_patch_files` apply an XEX delta patch (title update) to a base
  executable, using the built-in LZX decoder (`lzx_decompress`, `LzxDecoder`).
- **XDBF resources** (`xexkit.xdbf`): `XdbfFile` reads resources, string tables
  and achievements from XDBF/SPA data.
- **Guest data layouts** (`xexkit.xbox_types`, `xexkit.melody`): dataclasses
  derived from `GuestStruct` that decode from and encode to raw guest memory
  with `from_bytes`, `to_bytes` and `byte_size`.
- **Helpers**: `xexkit.byteorder` (byte swapping, guest handle tagging),
  `xexkit.section` and `xexkit.symbols` (sections and an address-ordered symbol
  table), `xexkit.files` (`load_file` and a read-only `MemoryMappedFile`), and
  `xexkit.vector_ops` (128-bit vector helper operations and shuffle tables).

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Examples

Load an executable and look at its sections:

```python
from xexkit.loader import load_image_file

image = load_image_file("default.xex")
print(hex(image.base), hex(image.entry_point))
text = image.find_section(".text")
if text is not None:
    print(text.name, hex(text.base), text.size)
```

Apply a title update:

```python
from xexkit.patcher import PatchError, apply_patch_files

try:
    apply_patch_files("default.xex", "default.xexp", "patched.xex")
except PatchError as error:
    print("patch failed:", error.result)
```

Read achievements from an XDBF blob:

```python
from xexkit.xdbf import Language, XdbfFile

with open("title.spa", "rb") as handle:
    spa = XdbfFile(handle.read())

for achievement in spa.get_achievements(Language.ENGLISH):
    print(achievement.name, achievement.score)
```

## What it does not do

- There is no command-line tool; everything is used as a library.
- There is no model of PowerPC register state (general, floating-point,
  condition or FPSCR registers) and no way to run guest code.
- XEX images that use normal (LZX) or delta compression cannot be loaded, and
  `apply_patch` rejects such base executables with `XEX_FILE_UNSUPPORTED`.