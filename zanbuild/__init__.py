"""
zanbuild - portable Windows build orchestration for Zandronum.

Provisions a self-contained toolchain (7-Zip, CMake, NASM, Python, OpenSSL,
FMOD Ex, Opus) into a local cache, locates Visual Studio, and drives CMake
to produce the engine executable from unmodified upstream sources.
"""

__version__ = "0.1.0"
