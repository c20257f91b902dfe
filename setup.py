"""Build Rendezvous package."""
import setuptools

with open('README.md') as f:
    long_desc = f.read()

setuptools.setup(
    name='rendezvous',
    version='0.1.0',
    description='WebRTC signaling server that pairs peers by session code',
    long_description=long_desc,
    long_description_content_type='text/markdown',
    packages=setuptools.find_packages(),
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: Apache Software License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.10',
    install_requires=[
        'click',
        'pydantic>=2',
        'tomli ; python_version<"3.11"',
        'tomli-w',
        'typing-extensions>=4.3.0 ; python_version<"3.11"',
        'websockets>=13.0',
    ],
    extras_require={
        'dev': [
            'cryptography',
            'pytest',
            'pytest-asyncio>=0.23.2',
            'pytest-timeout',
            'uvloop ; sys_platform!="win32"',
        ],
    },
    entry_points={
        'console_scripts': [
            'rendezvous-server=rendezvous.run:cli',
        ],
    },
)
