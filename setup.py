from setuptools import setup, find_packages

setup(
    name="chatroom",
    version="1.0.0",
    description="Multi-user chat room with TCP stream and UDP datagram transports",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "colorama",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "chatroom-tcp-server = chatroom.tcp_server:main",
            "chatroom-tcp-client = chatroom.tcp_client:main",
            "chatroom-udp-server = chatroom.udp_server:main",
            "chatroom-udp-client = chatroom.udp_client:main",
        ],
    },
    python_requires=">=3.9",
)
