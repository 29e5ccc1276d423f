import math

import pytest

from adaptode import Config, ConfigurationError, Method, Stat


def test_defaults_and_tolerance_transform():
    conf = Config()
    assert conf.method is Method.RADAU5
    assert conf.rtol_int == pytest.approx(0.1 * 1e-4 ** (2.0 / 3.0))
    assert conf.atol_int == pytest.approx(conf.rtol_int)            # atol == rtol
    expected = max(10.0 * conf.eps / conf.rtol_int, min(0.03, math.sqrt(conf.rtol_int)))
    assert conf.fnewt == pytest.approx(expected)


def test_set_tols_keeps_ratio():
    conf = Config()
    conf.set_tols(1e-8, 1e-2)
    assert conf.atol_int / conf.rtol_int == pytest.approx(1e-6)


@pytest.mark.parametrize("name, expected", [
    ("Radau5", Method.RADAU5), ("dopri", Method.DOPRI5), ("modeuler", Method.MOEULER),
    (Method.FWEULER, Method.FWEULER),
])
def test_method_parse(name, expected):
    assert Method.parse(name) is expected


def test_unknown_method_lists_accepted():
    with pytest.raises(ConfigurationError, match="radau5"):
        Method.parse("rk4")


def test_unknown_option_rejected():
    with pytest.raises(ConfigurationError, match="unknown option"):
        Config.create("radau5", atoll=1e-6)


@pytest.mark.parametrize("options", [
    dict(atol=0.0), dict(rtol=1e-20), dict(ini_h=-1.0), dict(safe=1.5),
    dict(theta_max=2.0), dict(max_steps=0), dict(newton="quasi"), dict(distr=0),
    dict(c1h=1.5),
])
def test_invalid_values(options):
    with pytest.raises(ConfigurationError):
        Config.create("radau5", **options)


def test_validate_catches_late_assignment():
    conf = Config()
    conf.ini_h = -1.0
    with pytest.raises(ConfigurationError, match="ini_h"):
        conf.validate()


def test_fixed_only_methods_need_fixed_steps():
    conf = Config.create("fweuler")
    with pytest.raises(ConfigurationError, match="fixed steps"):
        conf.validate()
    conf.set_fixed_h(0.1)
    conf.validate()


def test_dense_output_rules():
    conf = Config.create("moeuler")
    conf.set_dense_out(True, 0.1)
    with pytest.raises(ConfigurationError, match="no dense output"):
        conf.validate()

    conf = Config.create("dopri5")
    conf.set_dense_out(True, None, fn=lambda *a: None)
    with pytest.raises(ConfigurationError, match="dense_dx"):
        conf.validate()

    conf = Config.create("radau5", dense_dx=0.1)
    conf.validate()
    assert conf.dense


def test_replace_returns_checked_copy():
    conf = Config.create("dopri5", atol=1e-6, rtol=1e-6)
    other = conf.replace(rtol=1e-3)
    assert conf.rtol == 1e-6 and other.rtol == 1e-3
    with pytest.raises(ConfigurationError):
        conf.replace(bogus=1)


def test_stat_helpers():
    st = Stat(nfeval=3, nitmax=2)
    st.update_nitmax(1)
    assert st.nitmax == 2
    st.update_nitmax(5)
    cp = st.copy()
    st.reset()
    assert cp.as_dict()["nfeval"] == 3 and cp.nitmax == 5
    assert st.nfeval == 0
    assert "number of F evaluations" in str(cp)


def test_method_dependent_controller_defaults():
    conf = Config.create("radau5")
    assert conf.facmax == 8.0 and conf.stab_beta == 0.0

    dp = conf.replace(method="dopri5")
    assert dp.facmax == 5.0 and dp.stab_beta == 0.04

    user = Config.create("radau5", facmax=3.0).replace(method="dopri5")
    assert user.facmax == 3.0 and user.stab_beta == 0.04


def test_explicit_methods_skip_tolerance_transform():
    conf = Config.create("dopri5", atol=1e-6, rtol=1e-4)
    assert (conf.atol_int, conf.rtol_int) == (1e-6, 1e-4)
    bw = Config.create("bweuler", atol=1e-6, rtol=1e-4)
    assert bw.rtol_int == pytest.approx(0.1 * 1e-4 ** (2.0 / 3.0))
