"""
Test backend selection and the CPU backends.

Tests appropriate backends based on available hardware:
- CPU and reference: Always tested
- PyTorch: Tested in test_gpu_backends.py when installed
"""

import pytest
import numpy as np

from pypermutest._backends import (
    get_backend,
    resolve_backend,
    list_available_backends,
    print_backend_info,
    BackendBase,
    CPUBackendFP64,
    ReferenceBackend,
)
from pypermutest._backends.precision_detector import (
    detect_gpu_capabilities,
    classify_nvidia_gpu,
    recommend_precision,
    PrecisionSupport,
    GPUCapabilities,
    CPU_ONLY,
)
from pypermutest import FIT, RESID


# Detect hardware once at module level
GPU_CAPS = detect_gpu_capabilities()


class TestBackendDetection:
    """Test hardware detection and backend availability."""

    def test_detect_gpu_capabilities(self):
        caps = detect_gpu_capabilities()
        assert caps.gpu_name is not None
        assert caps.gpu_type in ['cuda', 'mps', 'none']
        assert caps.has_gpu == (caps.gpu_type != 'none')

    def test_list_backends(self):
        backends = list_available_backends()
        assert 'cpu' in backends
        assert 'reference' in backends
        if not GPU_CAPS.has_gpu:
            assert 'pytorch' not in backends

    def test_print_backend_info(self, capsys):
        print_backend_info()
        captured = capsys.readouterr()
        assert 'Backend Status' in captured.out
        assert 'CPU' in captured.out
        assert 'Reference' in captured.out


class TestPrecision:
    """FP64 classification of GPU models."""

    def test_data_center_gpu(self):
        support, ratio, recommended = classify_nvidia_gpu('NVIDIA A100-SXM4-40GB')
        assert support == PrecisionSupport.FULL_FP64
        assert recommended

    def test_consumer_gpu(self):
        support, ratio, recommended = classify_nvidia_gpu('NVIDIA GeForce RTX 4090')
        assert support == PrecisionSupport.GIMPED_FP64
        assert ratio == pytest.approx(1 / 64)
        assert not recommended

    def test_unknown_gpu_warns(self):
        with pytest.warns(UserWarning, match="Unknown NVIDIA GPU"):
            support, _, _ = classify_nvidia_gpu('Mystery Accelerator')
        assert support == PrecisionSupport.GIMPED_FP64

    def test_cpu_defaults_to_fp64(self):
        assert recommend_precision(CPU_ONLY, None) is True

    def test_fp64_on_metal_raises(self):
        metal = GPUCapabilities(
            has_gpu=True, gpu_name='Apple Metal GPU', gpu_type='mps',
            fp64_support=PrecisionSupport.NO_FP64,
            fp64_throughput_ratio=0.0, recommended_fp64=False,
        )
        with pytest.raises(RuntimeError, match="FP64"):
            recommend_precision(metal, True)
        assert recommend_precision(metal, False) is False

    def test_fp64_on_consumer_gpu_warns(self):
        consumer = GPUCapabilities(
            has_gpu=True, gpu_name='RTX 3080', gpu_type='cuda',
            fp64_support=PrecisionSupport.GIMPED_FP64,
            fp64_throughput_ratio=1 / 64, recommended_fp64=False,
        )
        with pytest.warns(UserWarning, match="gimped"):
            assert recommend_precision(consumer, True) is True


class TestSelection:
    """get_backend and resolve_backend."""

    def test_cpu_backend_creation(self):
        backend = get_backend('cpu')
        assert isinstance(backend, CPUBackendFP64)
        assert backend.name == 'cpu_fp64'
        assert backend.precision == 'fp64'

    def test_reference_backend_creation(self):
        backend = get_backend('reference')
        assert isinstance(backend, ReferenceBackend)
        assert backend.name == 'reference'

    def test_name_is_case_insensitive(self):
        assert isinstance(get_backend(' CPU '), CPUBackendFP64)

    def test_auto_returns_backend(self):
        backend = get_backend('auto')
        assert isinstance(backend, BackendBase)
        if not GPU_CAPS.has_gpu:
            assert backend.name == 'cpu_fp64'

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown backend"):
            get_backend('tpu')

    @pytest.mark.skipif(GPU_CAPS.has_gpu, reason="GPU present")
    def test_gpu_without_hardware(self):
        with pytest.raises((RuntimeError, ValueError)):
            get_backend('gpu')

    def test_resolve_instance(self):
        backend = ReferenceBackend()
        assert resolve_backend(backend) is backend

    def test_resolve_name(self):
        assert isinstance(resolve_backend('reference'), ReferenceBackend)

    def test_resolve_bad_type(self):
        with pytest.raises(TypeError):
            resolve_backend(42)

    def test_repr(self):
        assert repr(get_backend('cpu')) == "CPUBackendFP64(name='cpu_fp64')"


@pytest.mark.parametrize("backend_name,label", [("cpu", "cpu"), ("reference", "reference")])
class TestCPUBackends:
    """Both CPU backends on a small regression problem."""

    def test_device_info(self, backend_name, label):
        info = get_backend(backend_name).get_device_info()
        assert info['backend'] == label
        assert info['precision'] == 'fp64'
        assert 'NumPy' in info['library']

    def test_simple_projection(self, backend_name, label):
        backend = get_backend(backend_name)

        np.random.seed(42)
        n, p = 100, 3
        X = np.column_stack([np.ones(n), np.random.randn(n, p - 1)])
        y = X @ np.array([1.0, 2.0, -1.5]) + np.random.randn(n) * 0.1

        factor = backend.qr_decomposition(X)
        assert factor.rank == p

        result = backend.qr_apply(factor, y, FIT + RESID)
        beta = np.linalg.lstsq(X, y, rcond=None)[0]
        np.testing.assert_allclose(result.fitted, X @ beta, atol=1e-10)
        np.testing.assert_allclose(result.resid, y - X @ beta, atol=1e-10)


class TestBackendConsistency:
    """Factors from one backend work with the other."""

    def test_factor_interchange(self):
        np.random.seed(42)
        X = np.random.randn(30, 4)
        Y = np.random.randn(30, 3)
        cpu, ref = get_backend('cpu'), get_backend('reference')

        f_cpu = cpu.qr_decomposition(X)
        f_ref = ref.qr_decomposition(X)

        np.testing.assert_allclose(
            ref.qr_apply(f_cpu, Y, RESID).resid,
            cpu.qr_apply(f_ref, Y, RESID).resid,
            atol=1e-10
        )
