from setuptools import find_packages, setup

setup(
    name="caption-review-backend",
    version="0.1.0",
    package_dir={"": "backend"},
    packages=find_packages("backend", exclude=["tests", "tests.*"]),
    py_modules=["app"],
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.27",
        "pydantic>=2.5",
        "python-multipart>=0.0.9",
        "itsdangerous>=2.1",
        "bcrypt>=4.0",
        "python-dotenv>=1.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
    include_package_data=True,
    description="Backend for the caption/video review tool (ingest, versioning, review and export)",
)
