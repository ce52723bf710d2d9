import os
import re
from codecs import open

from setuptools import find_packages
from setuptools import setup

# Based on https://github.com/pypa/sampleproject/blob/main/setup.py
# and https://python-packaging-user-guide.readthedocs.org/

here = os.path.abspath(os.path.dirname(__file__))

with open(os.path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()
long_description_content_type = "text/markdown"

with open(os.path.join(here, "shieldcore/version.py")) as f:
    match = re.search(r'VERSION = "(.+?)"', f.read())
    assert match
    VERSION = match.group(1)

setup(
    name="shieldcore",
    version=VERSION,
    description="Orchestration core of a tracker-blocking browser extension: settings, capability modules, request pipeline and message routing.",
    long_description=long_description,
    long_description_content_type=long_description_content_type,
    license="MPL-2.0",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Framework :: AsyncIO",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: Implementation :: CPython",
        "Topic :: Security",
        "Topic :: Internet :: WWW/HTTP :: Browsers",
        "Typing :: Typed",
    ],
    packages=find_packages(
        include=[
            "shieldcore",
            "shieldcore.*",
        ]
    ),
    include_package_data=True,
    python_requires=">=3.10",
    # https://packaging.python.org/en/latest/discussions/install-requires-vs-requirements/#install-requires
    # It is not considered best practice to use install_requires to pin dependencies to specific versions.
    install_requires=[
        "ruamel.yaml>=0.16,<0.19",
        "publicsuffix2>=2.20190812,<3",
    ],
    extras_require={
        "dev": [
            "hypothesis>=5.8,<7",
            "pytest-asyncio>=0.17,<0.24",
            "pytest-cov>=2.7.1,<5",
            "pytest-timeout>=1.3.3,<3",
            "pytest>=6.1.0,<9",
            "tox>=3.5,<5",
        ],
    },
)
