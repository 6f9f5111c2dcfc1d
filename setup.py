from setuptools import setup, find_packages

setup(
    name='packsync',
    version='0.1.0',
    description='Keep a game folder in sync with a remote, content-addressed pack manifest',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    python_requires='>=3.10',
    install_requires=[
        'aiohttp',
        'aiofiles',
        'platformdirs',
        'PyYAML',
        'rich',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': [
            'packsync=packsync.cli:main',
        ],
    },
)
