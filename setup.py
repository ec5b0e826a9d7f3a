from __future__ import annotations

from pathlib import Path
from setuptools import find_packages, setup

BASE_DIR = Path(__file__).parent
README = (BASE_DIR / "readme.md").read_text(encoding="utf-8") if (BASE_DIR / "readme.md").exists() else ""

setup(
    name="qr-attendance",
    version="0.1.0",
    description="QR code attendance sessions for lecturers and camera redemption for students.",
    long_description=README,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"qr_attendance.data": ["migrations/*.sql"]},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "customtkinter>=5.2.0",
        "opencv-python>=4.8.0",
        "zxing-cpp>=2.2.0",
        "Pillow>=10.0.0",
        "qrcode>=7.4",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pyinstaller>=5.13.0",
        ]
    },
    entry_points={
        "gui_scripts": [
            "qr-attendance=qr_attendance.main:main",
        ]
    },
)
