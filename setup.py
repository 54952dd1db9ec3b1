from setuptools import setup, find_packages

setup(
    name="xplay-video-platform",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "alembic", "alembic.*"]),
    install_requires=[
        "sqlalchemy>=2.0.0",
        "alembic>=1.12.0",
        "pydantic>=2.0.0",
        "python-dotenv>=0.19.0",
        "numpy>=1.21.0",
        "scikit-learn>=1.0.0",
        "passlib>=1.7.4",
        "boto3>=1.28.0",
        "botocore>=1.31.0",
    ],
    extras_require={
        "postgres": [
            "psycopg2-binary>=2.9.0",
        ],
        "dev": [
            "pytest>=6.0.0",
            "pytest-cov>=2.0.0",
            "moto[dynamodb]>=5.0.0",
            "black>=21.0",
            "isort>=5.0.0",
            "mypy>=0.910",
            "flake8>=3.9.0",
        ],
    },
    python_requires=">=3.9",
    description="Storage backends, content tagging and recommendations for a video-sharing platform",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
