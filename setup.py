import io
import re

from setuptools import find_packages, setup

__version__ = re.search(
    r'__version__\s*=\s*[\'"]([^\'"]*)[\'"]',
    io.open("src/subworlds/version.py", encoding="utf_8_sig").read(),
).group(1)


setup(
    name="subworlds",
    version=__version__,
    description="subworlds is a Python library for running task queues on disjoint groups of a process pool.",
    long_description="""subworlds partitions a pool of cooperating processes into sub-worlds, and lets a single coordinator hand out macro tasks to them until the queue is drained.""",
    author="",
    author_email="",
    package_dir={"": "src"},
    packages=find_packages("src"),
    zip_safe=False,
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "cloudpickle",
        "fire",
        "numpy",
        "orjson",
        "pydantic>=2",
        "pyzmq",
        "typing_extensions",
    ],
    extras_require={
        "mpi": ["mpi4py"],
        "test": ["pytest"],
    },
)
