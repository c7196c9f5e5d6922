from setuptools import setup, find_packages

setup(
    name="usb-screen",
    version="0.1.0",
    description="Draw frames, play animations and flash content on a USB serial LCD screen",
    packages=find_packages(include=["usb_screen", "usb_screen.*"]),
    python_requires=">=3.11",
    install_requires=[
        "aioserial>=1.3.0",
        "numpy>=1.23",
        "Pillow>=10.1",
        "pyserial>=3.5",
    ],
    extras_require={
        "test": ["pytest>=7", "pytest-asyncio>=0.21"],
    },
)
