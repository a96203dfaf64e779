from setuptools import setup, find_packages

setup(
    name="subhound",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "requests",
        "dnspython",
        "backoff>=2.0",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "subhound = subhound.cli:main",
            "fuzzsub = subhound.cli:fuzzsub_main",
            "onsub = subhound.cli:onsub_main",
            "nmapscan = subhound.cli:nmapscan_main",
        ],
    },
    description="Subdomain brute-force, passive aggregation and nmap orchestration toolbox",
    license="MIT",
    keywords="subdomain enumeration recon security nmap",
)
