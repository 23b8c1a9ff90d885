from setuptools import setup, find_packages

setup(
    name='clisk-launcher',
    version='0.1.0',
    license="Apache 2.0",
    description="Pilot/worker Playwright launcher for clisk connectors with navigation-safe RPC sessions",
    long_description=open('README.md').read(),  # Ensure the README.md exists and is correct
    long_description_content_type='text/markdown',  # Use 'text/markdown' for Markdown files
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        'playwright>=1.40',
        'pydantic>=2.0',
        'click>=8.0',
        'PyYAML>=6.0',
        'python-dotenv>=1.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.0',
            'pytest-asyncio>=0.21',
        ],
    },
    entry_points={
        'console_scripts': [
            'clisk-launch=clisk_launcher.command.clisk_launch:run',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
    python_requires='>=3.9',
)
