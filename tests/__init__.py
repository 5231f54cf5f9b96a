"""Test suite for colorpic.

This package contains:
- Unit tests for the color algebra, lattice and PIC kernels
- Conservation tests for the particle current generators
- End-to-end simulation runs on small lattices
"""
