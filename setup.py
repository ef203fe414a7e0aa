from setuptools import setup, find_packages
import re
from pathlib import Path


def read_readme():
    this_directory = Path(__file__).parent
    readme_file = this_directory / 'README.md'
    if readme_file.exists():
        return readme_file.read_text(encoding='utf-8')
    return ""

def get_version():
    config_file = Path(__file__).parent / 'gqltask' / 'core' / 'config.py'
    if config_file.exists():
        match = re.search(r'APP_VERSION\s*=\s*["\']([^"\']+)["\']', config_file.read_text())
        if match:
            return match.group(1)
    return "0.1.0"


setup(
    name="gqltask",
    version=get_version(),
    description="Templated GraphQL-over-HTTP task executor with optional response encryption.",
    long_description=read_readme(),
    long_description_content_type='text/markdown',
    packages=find_packages(include=['gqltask', 'gqltask.*']),
    python_requires=">=3.11",
    install_requires=[
        "httpx>=0.27",
        "jinja2>=3.1",
        "pydantic>=2.5",
        "cryptography>=42.0",
        "typer>=0.12",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Internet :: WWW/HTTP",
    ],
    keywords="graphql http jinja2 workflow task",
    entry_points={
        'console_scripts': [
            'gqltask=gqltask.cli:cli_app',
        ],
    },
)
