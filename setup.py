#!/usr/bin/env -S python3 -B -u
"""
Setup script for ipban package - Linux firewall reconciliation engine
"""

from setuptools import setup, find_packages
import os

# Read the README file for long description
def read_readme():
    """Read README.md for package long description."""
    readme_path = os.path.join(os.path.dirname(__file__), 'README.md')
    if os.path.exists(readme_path):
        with open(readme_path, 'r', encoding='utf-8') as f:
            return f.read()
    return "IPBan Linux firewall - ipset/iptables reconciliation engine"

# Read requirements from requirements.txt
def read_requirements():
    """Read requirements from requirements.txt file."""
    requirements_path = os.path.join(os.path.dirname(__file__), 'requirements.txt')
    if os.path.exists(requirements_path):
        with open(requirements_path, 'r', encoding='utf-8') as f:
            return [line.strip() for line in f if line.strip() and not line.startswith('#')]
    return []

# Define package metadata
setup(
    name='ipban-linux-firewall',
    version='1.0.0',
    description='IPBan Linux firewall - ipset/iptables reconciliation engine',
    long_description=read_readme(),
    long_description_content_type='text/markdown',
    author='IPBan Contributors',
    author_email='',
    license='MIT',

    # Package structure - use ipban namespace
    packages=['ipban'] + ['ipban.' + pkg for pkg in find_packages(where='src')],
    package_dir={
        'ipban': 'src',
    },

    # Include non-Python files
    package_data={
        'ipban': [
            '*.yaml',
            '*.yml',
        ],
    },
    include_package_data=True,

    # Python version requirement
    python_requires='>=3.8',

    # Dependencies from requirements.txt
    install_requires=read_requirements(),

    # Optional dependencies
    extras_require={
        'dev': [
            'pytest>=6.0.0',
            'pytest-cov>=2.0.0',
            'flake8>=3.8.0',
        ],
    },

    # Entry points for command-line scripts
    entry_points={
        'console_scripts': [
            'ipban-firewall=ipban.scripts.firewall_ctl:main',
        ],
    },

    # Classification
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: System :: Networking :: Firewalls',
    ],
)
