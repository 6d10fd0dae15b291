from setuptools import find_packages, setup

setup(
    name='payloadlink',
    version='0.3.0',
    description='Capability, control and telemetry protocol engine for UAV payloads',
    author='isantolin',
    author_email='',
    packages=find_packages(include=['payloadlink', 'payloadlink.*']),
    python_requires='>=3.11',
    install_requires=[
        'construct',
        'msgspec',
        'transitions',
        'marshmallow',
        'prometheus-client',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'payloadlink-frame-debug=payloadlink.tools.frame_debug:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
