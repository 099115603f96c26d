from setuptools import setup

setup(name="arithma",
    version="0.1.0",
    license='MIT',
    python_requires=">=3.10",
    install_requires=[
        "torch",
        "ply",
        "numpy"
    ],
    py_modules=[
        "codegen",
        "derivative",
        "environment",
        "evaluator",
        "execute",
        "integration",
        "lexer",
        "matrix",
        "parser",
        "runtime",
        "simplify",
        "solver",
        "type_checker",
    ],
    packages=["utils"],
    entry_points={
        "console_scripts": [
            "arithma=execute:main",
        ],
    },
    extras_require={
        "dev": ["pytest>=7"],
    },
)
