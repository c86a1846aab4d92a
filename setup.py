from setuptools import setup, find_packages

setup(
    name="ics_alerts",
    version="0.1.0",
    packages=find_packages(exclude=["tests"]),
    install_requires=[
        "requests",
    ],
    extras_require={
        "test": [
            "pytest",
            "icalendar",
        ],
    },
    entry_points={
        "console_scripts": [
            "ics-alerts=ics_alerts.cli:main",
        ],
    },
)
