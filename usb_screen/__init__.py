"""
USB LCD screen driver package.

This package provides:
- RGB565 pixel encoding for the device wire format
- Command/ack transport over a serial channel
- Frame drawing with bounded retry and device recovery
- Flash programming into the paged onboard memory
- Parallel frame decoding and paced animation playback
"""

__version__ = "0.1.0"
