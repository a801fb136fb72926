from setuptools import setup

setup(name='pygeomorpher',
      version='0.1.0',
      description='Morph regular geographies into cartograms, with tabular data joined onto every region.',
      url='https://github.com/benmaier/pygeomorpher',
      author='Benjamin F. Maier',
      author_email='benjaminfrankmaier@gmail.com',
      license='MIT',
      packages=['pygeomorpher'],
      include_package_data = True,
      python_requires='>=3.9',
      install_requires=[
          'numpy',
          'scipy',
          'pandas',
          'shapely',
          'geopandas',
          'cartopy',
          'easing-functions',
          'progressbar2',
          'visvalingamwyatt',
      ],
      extras_require={
          'test': [
              'pytest',
          ],
      },
      zip_safe=False)
