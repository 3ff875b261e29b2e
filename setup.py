from setuptools import setup


setup(
    name="plan-doctor",
    version="0.3.0",
    description="Local tools for importing pasted lesson-plan tables into structured plans",
    packages=["plan_doctor"],
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
    ],
    entry_points={
        "console_scripts": [
            "plan-doctor=plan_doctor.cli:main",
        ]
    },
)
