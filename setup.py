"""
setup.py for fuelex - fuel invoice ingestion and reconciliation.
"""

from setuptools import setup, find_packages

setup(
    name="fuelex",
    version="0.1.0",
    description="Fuel invoice extraction, validation and duplicate reconciliation",
    packages=find_packages(include=['fuelex', 'fuelex.*']),
    package_data={
        'fuelex': ['prompts/*.yaml'],
        'fuelex.config': ['*.yaml'],
    },
    include_package_data=True,
    python_requires='>=3.9',
    install_requires=[
        'pdfminer.six',
        'pyyaml',
        'pydantic>=2.0',
        'jinja2',
        'openai>=1.0',
        'Pillow>=9.1',
        'click'
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
            'httpx'
        ]
    },
    entry_points={
        'console_scripts': [
            'fuelex=fuelex.cli:cli',
        ],
    }
)
