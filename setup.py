from setuptools import setup

install_req = [
    "numpy",
    "torch",
]

test_req = [
    "pytest",
]

if __name__ == "__main__":
    setup(
        name="myotorque",
        version="0.1.0",
        packages=["myotorque"],
        python_requires=">=3.10",
        install_requires=install_req,
        extras_require={"test": test_req},
    )
