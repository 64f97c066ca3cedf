from setuptools import setup, find_packages
setup(
    name="listing_reference",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages("src"),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "httpx>=0.24",
        "fastapi>=0.95",
        "pydantic>=1.10",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        'console_scripts': [
            'listing_reference=listing_reference.__main__:_safe_main'
        ]
    }
)
