def test_imports():
    import prepro
    import prepro.backends
    import prepro.backends.native
    import prepro.backends.reference
    import prepro.builder
    import prepro.extract
    import prepro.instances
    import prepro.session
    assert prepro.__version__
    assert set(prepro.__all__) <= set(dir(prepro))
