import unittest
from prepro.instances import VarManager
from prepro.extract import PreproInstance
from prepro.core.types import make_clause

class TestCore(unittest.TestCase):
    def test_var_manager_starts_above_instance(self):
        vm = VarManager(4)
        self.assertEqual(vm.next_var_id, 5)
        self.assertEqual(vm.max_id, 4)
        self.assertEqual(vm.fresh(), 5)
        self.assertEqual(vm.fresh(), 6)
        self.assertEqual(vm.max_id, 6)

    def test_var_manager_reserve(self):
        vm = VarManager()
        vm.reserve_up_to(10)
        self.assertEqual(vm.fresh(), 11)
        # reserving below the current id is a no-op
        vm.reserve_up_to(3)
        self.assertEqual(vm.next_var_id, 12)

    def test_prepro_instance_is_a_dataclass(self):
        inst = PreproInstance(
            hards=[make_clause([1, -2])],
            softs=[{make_clause([3]): 2}],
            top_weight=3,
            removed_weight=[0],
        )
        self.assertEqual(inst.n_objectives, 1)
        self.assertEqual(inst.objective(0), {make_clause([3]): 2})

if __name__ == "__main__":
    unittest.main()
