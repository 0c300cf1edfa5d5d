from setuptools import setup, find_packages


setup(
    name="psbpack",
    version="0.1",
    packages=find_packages(include=["psbpack", "psbpack.*"]),
    description="Pack many small files into an aligned .bin blob with a .psb descriptor, and unpack them again.",
    author="vercingetorx",
    install_requires=[
        "pycryptodomex>=3.23.0",
        "argon2-cffi>=23.1.0",
    ],
    entry_points={
        "console_scripts": [
            "psbpack=psbpack.cli:main",
        ]
    },
)
