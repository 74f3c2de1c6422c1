"""
Analysis phase: classification of raw callables and synthesis of the extra
callables (implicit special members, subclass trampolines, casts, allocators,
heap-owned instance helpers) the boundary needs.
"""
