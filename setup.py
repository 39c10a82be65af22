"""Install the Regicide account and session services."""

from setuptools import setup, find_packages

setup(
    name='regicide-auth',
    version='0.1.0',
    packages=find_packages(exclude=['*test*']),
    package_data={'regicide_auth': ['data/*.json']},
    install_requires=[
        "boto3",
        "botocore",
        "click",
        "pydantic>=2",
        "pyjwt",
        "python-json-logger",
        "pytz",
        "retry"
    ],
    extras_require={
        'test': [
            "hypothesis",
            "pytest"
        ]
    },
    entry_points={
        'console_scripts': ['regicide-auth=regicide_auth.cli:cli']
    },
    zip_safe=False
)
