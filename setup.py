from setuptools import setup, find_packages
setup(
    name = "uncalled",
    version = "0.1.0",
    description = "Checks for missing calls",
    author = "Various Developers",
    packages = find_packages(exclude=['tests']),
    package_data = {'uncalled': ['default.yaml']},
    install_requires = [
        'attrs',
        'typeshed_client',
        'beniget',
        'gast',
        'PyYAML',
        ],
    extras_require = {
        'test': ['pytest'],
        },
    entry_points = {
        'console_scripts': ['uncalled = uncalled.__main__:main'],
        },
    python_requires='>=3.9',
    )
