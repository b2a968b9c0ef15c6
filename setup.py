from setuptools import setup, find_namespace_packages

setup(
    name="luz-sombra-analyzer",
    version="1.0.0",
    packages=find_namespace_packages(include=["LuzSombraApp", "LuzSombraApp.*"]),
    include_package_data=True,
    install_requires=[
        "opencv-python>=4.5.0",
        "numpy>=1.21.0",
        "Pillow>=9.4.0",
        "pandas>=1.3.0",
        "matplotlib>=3.4.0",
        "scikit-image>=0.19.0",
        "scikit-learn>=1.0.0",
        "joblib>=1.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "luz-sombra-analyzer=LuzSombraApp.app:main",
        ],
    },
    python_requires=">=3.9",
    description="Light/shadow coverage classification for agricultural plot photographs",
    keywords="agriculture, shade netting, image classification, light, shadow",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
