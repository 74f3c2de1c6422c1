"""
cpp_bridge_generator: lowers parsed C++ callables into a safe cross-language
call boundary, plus the native and safe-side glue needed on both sides.
"""

__version__ = "0.3.0"
